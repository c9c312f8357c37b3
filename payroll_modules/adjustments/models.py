"""
Individual Adjustment Models (``payroll_modules.adjustments.models``).

Responsibility
--------------
Frozen dataclass value objects for ad-hoc, per-staff allowances and
deductions, and the ledger recording which deductions were recovered in
which payroll period.

Invariants enforced
-------------------
* Amounts are non-negative ``Decimal``.
* ``remaining_balance`` (when tracked) never exceeds ``total_amount``.
* One ``DeductionApplication`` per (deduction, period).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_kernel.domain.values import ZERO, parse_period, period_in_window
from payroll_kernel.exceptions import ValidationError

DEDUCTIONS_RESOURCE = "staff_individual_deductions"


class AllowanceStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    CANCELLED = "cancelled"


class DeductionStatus(str, Enum):
    ACTIVE = "active"
    PAID_OFF = "paid_off"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class IndividualAllowance:
    """A one-off allowance (overtime, bonus, arrears, ...) for one period."""
    id: UUID
    staff_id: UUID
    type: str
    amount: Decimal
    period: str
    description: str | None = None
    status: AllowanceStatus = AllowanceStatus.PENDING
    payroll_run_id: UUID | None = None
    created_by: UUID | None = None

    def __post_init__(self):
        parse_period(self.period)
        if self.amount < 0:
            raise ValidationError("Allowance amount cannot be negative", field="amount")
        if not self.type.strip():
            raise ValidationError("Allowance type is required", field="type")


@dataclass(frozen=True)
class IndividualDeduction:
    """
    A per-period deduction (salary advance, fine, loan repayment, ...).

    Recurs over ``start_period..end_period`` when a window is set; otherwise
    applies to ``period`` only.
    """
    id: UUID
    staff_id: UUID
    type: str
    amount: Decimal
    period: str
    total_amount: Decimal | None = None
    remaining_balance: Decimal | None = None
    start_period: str | None = None
    end_period: str | None = None
    description: str | None = None
    status: DeductionStatus = DeductionStatus.ACTIVE
    loan_id: UUID | None = None
    is_loan_repayment: bool = False
    created_by: UUID | None = None

    def __post_init__(self):
        parse_period(self.period)
        for bound in (self.start_period, self.end_period):
            if bound is not None:
                parse_period(bound)
        if self.start_period and self.end_period and self.end_period < self.start_period:
            raise ValidationError("end_period is before start_period", field="end_period")
        if self.amount < 0:
            raise ValidationError("Deduction amount cannot be negative", field="amount")
        if self.total_amount is not None and self.total_amount < 0:
            raise ValidationError("total_amount cannot be negative", field="total_amount")
        if self.remaining_balance is not None:
            if self.remaining_balance < 0:
                raise ValidationError(
                    "remaining_balance cannot be negative", field="remaining_balance",
                )
            if self.total_amount is not None and self.remaining_balance > self.total_amount:
                raise ValidationError(
                    "remaining_balance cannot exceed total_amount", field="remaining_balance",
                )

    @property
    def is_recurring(self) -> bool:
        return self.start_period is not None or self.end_period is not None

    def covers(self, period: str) -> bool:
        """True when the deduction is due in ``period``."""
        if self.period == period:
            return True
        if not self.is_recurring:
            return False
        return period_in_window(period, self.start_period or self.period, self.end_period)

    def amount_due(self) -> Decimal:
        """This period's recovery, capped at the outstanding balance."""
        if self.remaining_balance is None:
            return self.amount
        return min(self.amount, self.remaining_balance)

    def snapshot(self) -> dict:
        """Audit-friendly view of the mutable fields."""
        return {
            "type": self.type,
            "amount": str(self.amount),
            "period": self.period,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "remaining_balance": (
                str(self.remaining_balance) if self.remaining_balance is not None else None
            ),
            "status": self.status.value,
            "loan_id": str(self.loan_id) if self.loan_id else None,
        }


@dataclass(frozen=True)
class DeductionApplication:
    """Ledger row: ``amount`` of deduction ``deduction_id`` recovered in ``period``."""
    id: UUID
    deduction_id: UUID
    period: str
    amount: Decimal = ZERO
    payroll_run_id: UUID | None = None
    applied_at: datetime | None = None
