"""
Loan Domain Models (``payroll_modules.loans.models``).

Responsibility
--------------
Frozen dataclass value objects for staff loans and the cooperative
organizations that issue some of them.  Repayment schedule rows are the
engine's ``LoanInstallment``.

Invariants enforced
-------------------
* ``0 <= installments_paid <= number_of_installments``.
* ``0 <= remaining_balance <= principal``.
* All monetary fields use ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.amortization import InterestMethod, LoanInstallment
from payroll_kernel.domain.values import ZERO
from payroll_kernel.exceptions import ValidationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.loans.models")

__all__ = [
    "CooperativeOrganization",
    "InterestMethod",
    "Loan",
    "LoanInstallment",
    "LoanStatus",
    "LoanType",
]


class LoanStatus(str, Enum):
    """Loan lifecycle states."""
    ACTIVE = "active"
    PAID_OFF = "paid_off"
    CANCELLED = "cancelled"


class LoanType(str, Enum):
    SALARY_ADVANCE = "salary_advance"
    COOPERATIVE_LOAN = "cooperative_loan"
    PERSONAL_LOAN = "personal_loan"
    EMERGENCY_LOAN = "emergency_loan"


@dataclass(frozen=True)
class CooperativeOrganization:
    """A staff cooperative that issues loans."""
    id: UUID
    name: str
    interest_rate_default: Decimal = ZERO
    contact_person: str | None = None
    email: str | None = None
    phone_number: str | None = None
    is_active: bool = True

    def __post_init__(self):
        if not self.name.strip():
            raise ValidationError("Cooperative name is required", field="name")
        if self.interest_rate_default < 0:
            raise ValidationError(
                "interest_rate_default cannot be negative", field="interest_rate_default",
            )


@dataclass(frozen=True)
class Loan:
    """A staff loan repaid in monthly installments through payroll."""
    id: UUID
    staff_id: UUID
    loan_type: LoanType
    principal: Decimal
    interest_rate: Decimal
    method: InterestMethod
    number_of_installments: int
    monthly_principal: Decimal
    monthly_interest: Decimal
    monthly_total: Decimal
    total_interest: Decimal
    remaining_balance: Decimal
    start_date: date
    end_date: date
    installments_paid: int = 0
    status: LoanStatus = LoanStatus.ACTIVE
    cooperative_id: UUID | None = None
    notes: str | None = None
    created_by: UUID | None = None

    def __post_init__(self):
        if not 0 <= self.installments_paid <= self.number_of_installments:
            raise ValidationError(
                f"installments_paid {self.installments_paid} outside "
                f"0..{self.number_of_installments}",
                field="installments_paid",
            )
        if self.remaining_balance < 0 or self.remaining_balance > self.principal:
            raise ValidationError(
                f"remaining_balance {self.remaining_balance} outside 0..{self.principal}",
                field="remaining_balance",
            )

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    def snapshot(self) -> dict:
        return {
            "status": self.status.value,
            "principal": str(self.principal),
            "interest_rate": str(self.interest_rate),
            "method": self.method.value,
            "number_of_installments": self.number_of_installments,
            "installments_paid": self.installments_paid,
            "monthly_total": str(self.monthly_total),
            "remaining_balance": str(self.remaining_balance),
        }
