"""
Leave Domain Models (``payroll_modules.leave.models``).

Responsibility
--------------
Frozen dataclass value objects for leave types, yearly balances, the monthly
accrual ledger and leave requests.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* ``remaining_days = accrued_days + carried_forward - used_days`` is derived,
  never stored, and never negative.
* Leave type codes are upper-cased.
* Day quantities are ``Decimal`` (accrual rates are fractional).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_kernel.domain.values import ZERO
from payroll_kernel.exceptions import ValidationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.leave.models")


class LeaveRequestStatus(str, Enum):
    """Leave request lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LeaveType:
    """A configured kind of leave (annual, sick, maternity, ...)."""
    id: UUID
    name: str
    code: str
    is_paid: bool = True
    max_days_per_year: int = 0
    accrual_rate: Decimal = ZERO
    requires_approval: bool = True
    is_active: bool = True
    description: str | None = None

    def __post_init__(self):
        if self.code != self.code.upper():
            object.__setattr__(self, "code", self.code.upper())
        if self.accrual_rate < 0:
            raise ValidationError("accrual_rate cannot be negative", field="accrual_rate")
        if self.max_days_per_year < 0:
            raise ValidationError(
                "max_days_per_year cannot be negative", field="max_days_per_year",
            )


@dataclass(frozen=True)
class LeaveBalance:
    """A staff member's balance for one leave type and calendar year."""
    id: UUID
    staff_id: UUID
    leave_type_id: UUID
    year: int
    accrued_days: Decimal = ZERO
    used_days: Decimal = ZERO
    carried_forward: Decimal = ZERO

    def __post_init__(self):
        if self.remaining_days < 0:
            logger.warning(
                "leave_balance_negative",
                extra={
                    "staff_id": str(self.staff_id),
                    "leave_type_id": str(self.leave_type_id),
                    "year": self.year,
                },
            )
            raise ValidationError(
                f"Leave balance would be negative ({self.remaining_days} days)",
                field="used_days",
            )

    @property
    def remaining_days(self) -> Decimal:
        return self.accrued_days + self.carried_forward - self.used_days


@dataclass(frozen=True)
class LeaveAccrualEntry:
    """Record that ``days`` were accrued for (staff, leave type, period)."""
    id: UUID
    staff_id: UUID
    leave_type_id: UUID
    period: str
    days: Decimal
    accrued_at: datetime | None = None


@dataclass(frozen=True)
class LeaveRequest:
    """A request for leave between two dates (inclusive)."""
    id: UUID
    staff_id: UUID
    leave_type_id: UUID
    start_date: date
    end_date: date
    total_days: int
    reason: str = ""
    status: LeaveRequestStatus = LeaveRequestStatus.PENDING
    requested_by: UUID | None = None
    approved_by: UUID | None = None
    approval_comments: str | None = None
    decided_at: datetime | None = None

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ValidationError(
                f"End date {self.end_date} is before start date {self.start_date}",
                field="end_date",
            )

    @property
    def is_terminal(self) -> bool:
        return self.status != LeaveRequestStatus.PENDING


@dataclass(frozen=True)
class PayrollPeriodLeave:
    """An approved request overlapping a payroll month."""
    request: LeaveRequest
    days_in_period: int
    is_paid: bool
    leave_type_name: str


@dataclass(frozen=True)
class AccrualReport:
    """Outcome of a monthly accrual pass."""
    period: str
    applied: int = 0
    skipped: int = 0
    balances_created: int = 0
