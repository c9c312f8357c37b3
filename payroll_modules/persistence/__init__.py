"""
Persistence (``payroll_modules.persistence``).

The ``PayrollPersistence`` port and its two adapters.
"""

from payroll_modules.persistence.memory import InMemoryPersistence
from payroll_modules.persistence.port import PayrollPersistence
from payroll_modules.persistence.sqlalchemy_store import SqlAlchemyPersistence

__all__ = [
    "InMemoryPersistence",
    "PayrollPersistence",
    "SqlAlchemyPersistence",
]
