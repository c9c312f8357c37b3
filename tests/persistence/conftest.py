"""
Fixtures for the SQLAlchemy adapter tests.

Each test gets a fresh in-memory SQLite database with every payroll table
created and the standard world seeded through the adapter itself.
"""

import pytest

from payroll_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from payroll_modules.context import SessionContext
from payroll_modules.persistence.sqlalchemy_store import SqlAlchemyPersistence
from tests.conftest import seed_world


@pytest.fixture
def sql_store():
    init_engine_from_url("sqlite://")
    create_tables()
    yield SqlAlchemyPersistence(get_session_factory())
    reset_engine()


@pytest.fixture
def sql_world(sql_store):
    return seed_world(sql_store)


@pytest.fixture
def sql_context(sql_store, sql_world, audit_sink, notification_sink, clock):
    ctx = SessionContext(
        sql_store,
        audit_sink=audit_sink,
        notification_sink=notification_sink,
        clock=clock,
    )
    yield ctx
    ctx.close()
