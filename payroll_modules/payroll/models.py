"""
Payroll Domain Models (``payroll_modules.payroll.models``).

Responsibility
--------------
Frozen dataclass value objects for payroll runs and payslips, plus the
result types returned by ``PayrollRunService``.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Payslip: ``gross_pay == basic + sum(allowances) + arrears + overtime + bonus``
  and ``net_pay == gross_pay - total_deductions``.
* PayrollRun aggregate totals equal the sums over its payslips.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.payslip import PayslipCalculation
from payroll_kernel.domain.values import ZERO, sum_amounts
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.models")


class PayrollRunStatus(str, Enum):
    """Payroll run lifecycle states."""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    PROCESSED = "processed"


@dataclass(frozen=True)
class PayrollRun:
    """A payroll run for one period, optionally scoped to a department."""
    id: UUID
    period: str
    status: PayrollRunStatus = PayrollRunStatus.DRAFT
    department_id: UUID | None = None
    staff_count: int = 0
    gross_amount: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_amount: Decimal = ZERO
    created_by: UUID | None = None
    approved_by: UUID | None = None
    processed_at: datetime | None = None
    created_at: datetime | None = None
    version: int = 1

    @property
    def is_locked(self) -> bool:
        return self.status == PayrollRunStatus.PROCESSED

    def snapshot(self) -> dict:
        """Audit-friendly view of the mutable fields."""
        return {
            "status": self.status.value,
            "staff_count": self.staff_count,
            "gross_amount": str(self.gross_amount),
            "total_deductions": str(self.total_deductions),
            "net_amount": str(self.net_amount),
            "approved_by": str(self.approved_by) if self.approved_by else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "version": self.version,
        }


@dataclass(frozen=True)
class Payslip:
    """One staff member's persisted pay for a processed run."""
    id: UUID
    staff_id: UUID
    payroll_run_id: UUID
    period: str
    basic_salary: Decimal
    allowances: dict[str, Decimal]
    deductions: dict[str, Decimal]
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    arrears: Decimal = ZERO
    overtime: Decimal = ZERO
    bonus: Decimal = ZERO

    def __post_init__(self):
        expected_gross = (
            self.basic_salary
            + sum_amounts(self.allowances.values())
            + self.arrears
            + self.overtime
            + self.bonus
        )
        if expected_gross != self.gross_pay:
            raise ValueError(
                f"Payslip gross {self.gross_pay} does not equal its components {expected_gross}"
            )
        if sum_amounts(self.deductions.values()) != self.total_deductions:
            raise ValueError("Payslip total_deductions does not equal sum of deductions")
        if self.gross_pay - self.total_deductions != self.net_pay:
            raise ValueError("Payslip net_pay must equal gross_pay - total_deductions")


@dataclass(frozen=True)
class SkippedStaff:
    """A staff member left out of a run because their calculation failed."""
    staff_id: UUID
    staff_number: str
    error_code: str
    reason: str


@dataclass(frozen=True)
class PayrollComputation:
    """Computed (not necessarily persisted) payroll for a run's scope."""
    period: str
    calculations: tuple[PayslipCalculation, ...] = ()
    skipped: tuple[SkippedStaff, ...] = ()
    run_id: UUID | None = None

    @property
    def staff_count(self) -> int:
        return len(self.calculations)

    @property
    def gross_amount(self) -> Decimal:
        return sum_amounts(c.gross_pay for c in self.calculations)

    @property
    def total_deductions(self) -> Decimal:
        return sum_amounts(c.total_deductions for c in self.calculations)

    @property
    def net_amount(self) -> Decimal:
        return sum_amounts(c.net_pay for c in self.calculations)


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of processing an approved run."""
    run: PayrollRun
    payslips: tuple[Payslip, ...]
    skipped: tuple[SkippedStaff, ...] = ()
    allowances_applied: int = 0
    deductions_applied: int = 0
    loan_installments_applied: int = 0


@dataclass(frozen=True)
class ReopenResult:
    """Outcome of reopening a processed run."""
    run: PayrollRun
    payslips_deleted: int = 0
    allowances_reverted: int = 0


@dataclass(frozen=True)
class SalaryStructureEntry:
    """One row of the (grade level, step) -> basic salary table."""
    grade_level: int
    step: int
    basic_salary: Decimal
    id: UUID | None = None

