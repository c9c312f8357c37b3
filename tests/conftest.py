"""
Pytest fixtures for the payroll test suite.

Provides:
- Structured logging configuration and log capture
- A deterministic clock, recording sinks and in-memory persistence
- A seeded payroll "world": users for every role, two staff members, the
  CONJUSS salary scale, allowance and deduction rules, leave types
- A ``SessionContext`` wired to all of the above

The SQLAlchemy adapter tests reuse ``seed_world`` against an in-memory
SQLite database (see ``tests/persistence/conftest.py``).
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from payroll_engines.salary import DEFAULT_SALARY_SCALE, AllowanceRule, DeductionRule, RuleKind
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.roles import Actor, Role
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.sinks import RecordingAuditSink, RecordingNotificationSink
from payroll_modules.context import SessionContext
from payroll_modules.leave.models import LeaveType
from payroll_modules.payroll.models import SalaryStructureEntry
from payroll_modules.persistence.memory import InMemoryPersistence
from payroll_modules.staff.models import Department, Staff, StaffStatus, UserAccount

FIXED_NOW = datetime(2024, 1, 15, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, context):
            context.payroll.create_run("2024-01", actor)
            logs = captured_logs()
            assert any(r["message"] == "payroll_run_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Seeded payroll world
# =============================================================================


@dataclass
class World:
    """Ids and actors of the seeded records."""
    department: Department
    super_admin: Actor
    account_admin: Actor
    payroll_admin: Actor
    staff_actor: Actor
    field_officer: Staff
    clerk: Staff
    annual_leave: LeaveType
    sick_leave: LeaveType
    unpaid_leave: LeaveType


ALLOWANCE_RULES = (
    AllowanceRule(name="Housing Allowance", kind=RuleKind.PERCENTAGE, value=Decimal("20")),
    AllowanceRule(name="Hazard Allowance", kind=RuleKind.PERCENTAGE, value=Decimal("10")),
)

DEDUCTION_RULES = (
    DeductionRule(name="PAYE Tax", kind=RuleKind.PERCENTAGE, value=Decimal("0")),
    DeductionRule(name="Pension", kind=RuleKind.PERCENTAGE, value=Decimal("8")),
    DeductionRule(name="NHF", kind=RuleKind.PERCENTAGE, value=Decimal("2.5")),
)


def _actor(store, role: Role) -> Actor:
    user = UserAccount(id=uuid4(), email=f"{role.value}@judiciary.test", role=role)
    store.add_user(user)
    return Actor(user_id=user.id, role=role)


def seed_world(store) -> World:
    """Populate ``store`` with the reference data every service test uses."""
    with store.unit_of_work():
        department = Department(id=uuid4(), name="Registry", code="REG")
        store.add_department(department)

        super_admin = _actor(store, Role.SUPER_ADMIN)
        account_admin = _actor(store, Role.ACCOUNT_ADMIN)
        payroll_admin = _actor(store, Role.PAYROLL_ADMIN)
        staff_actor = _actor(store, Role.STAFF)

        for (grade_level, step), amount in DEFAULT_SALARY_SCALE.items():
            store.put_salary_entry(SalaryStructureEntry(grade_level, step, amount, id=uuid4()))
        for rule in ALLOWANCE_RULES:
            store.add_allowance_rule(rule)
        for rule in DEDUCTION_RULES:
            store.add_deduction_rule(rule)

        field_officer = Staff(
            id=uuid4(),
            staff_number="JSC/2019/001",
            first_name="Amina",
            last_name="Bello",
            grade_level=10,
            step=5,
            position="Field Officer",
            department_id=department.id,
            user_id=staff_actor.user_id,
            employment_date=date(2019, 3, 1),
        )
        clerk = Staff(
            id=uuid4(),
            staff_number="JSC/2021/014",
            first_name="Chidi",
            last_name="Okafor",
            grade_level=1,
            step=1,
            position="Clerk",
            department_id=department.id,
            employment_date=date(2021, 6, 1),
        )
        store.add_staff(field_officer)
        store.add_staff(clerk)

        annual_leave = LeaveType(
            id=uuid4(), name="Annual Leave", code="al", is_paid=True,
            max_days_per_year=30, accrual_rate=Decimal("2.5"),
        )
        sick_leave = LeaveType(
            id=uuid4(), name="Sick Leave", code="SL", is_paid=True,
            max_days_per_year=12, accrual_rate=Decimal("1"),
        )
        unpaid_leave = LeaveType(
            id=uuid4(), name="Unpaid Leave", code="UL", is_paid=False,
        )
        for leave_type in (annual_leave, sick_leave, unpaid_leave):
            store.add_leave_type(leave_type)

    return World(
        department=department,
        super_admin=super_admin,
        account_admin=account_admin,
        payroll_admin=payroll_admin,
        staff_actor=staff_actor,
        field_officer=field_officer,
        clerk=clerk,
        annual_leave=annual_leave,
        sick_leave=sick_leave,
        unpaid_leave=unpaid_leave,
    )


def add_staff(store, staff_number: str, grade_level: int, step: int,
              position: str = "Officer", status: StaffStatus = StaffStatus.ACTIVE,
              department_id: UUID | None = None) -> Staff:
    staff = Staff(
        id=uuid4(),
        staff_number=staff_number,
        first_name="Test",
        last_name=staff_number,
        grade_level=grade_level,
        step=step,
        position=position,
        status=status,
        department_id=department_id,
    )
    with store.unit_of_work():
        store.add_staff(staff)
    return staff


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def store():
    return InMemoryPersistence()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def notification_sink():
    return RecordingNotificationSink()


@pytest.fixture
def world(store) -> World:
    return seed_world(store)


@pytest.fixture
def context(store, world, audit_sink, notification_sink, clock):
    ctx = SessionContext(
        store,
        audit_sink=audit_sink,
        notification_sink=notification_sink,
        clock=clock,
    )
    yield ctx
    ctx.close()
