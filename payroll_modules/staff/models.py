"""
Staff Domain Models (``payroll_modules.staff.models``).

Responsibility
--------------
Frozen dataclass value objects for the people payroll pays and the login
accounts that act on the system: staff members, user accounts and
departments.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* Grade level is within 1..17 and step within 1..15.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from payroll_engines.salary import is_valid_grade_step
from payroll_kernel.domain.roles import Role
from payroll_kernel.exceptions import ValidationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.staff.models")


class StaffStatus(str, Enum):
    """Employment status."""
    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    RETIRED = "retired"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class Department:
    id: UUID
    name: str
    code: str


@dataclass(frozen=True)
class UserAccount:
    """A login account.  ``role`` drives every capability check."""
    id: UUID
    email: str
    role: Role
    is_active: bool = True


@dataclass(frozen=True)
class Staff:
    """A staff member on the CONJUSS scale."""
    id: UUID
    staff_number: str
    first_name: str
    last_name: str
    grade_level: int
    step: int
    position: str
    status: StaffStatus = StaffStatus.ACTIVE
    department_id: UUID | None = None
    user_id: UUID | None = None
    employment_date: date | None = None

    def __post_init__(self):
        if not is_valid_grade_step(self.grade_level, self.step):
            logger.warning(
                "staff_invalid_grade_step",
                extra={
                    "staff_number": self.staff_number,
                    "grade_level": self.grade_level,
                    "step": self.step,
                },
            )
            raise ValidationError(
                f"Invalid grade level / step GL{self.grade_level} "
                f"Step {self.step} for staff {self.staff_number}",
                field="grade_level",
            )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
