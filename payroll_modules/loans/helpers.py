"""
Loan helper functions -- pure state changes on ``Loan`` values.

Pure functions with no I/O.  Called by ``LoanService`` and by the adjustment
ledger when a loan-repayment deduction is recovered.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from payroll_engines.amortization import (
    InterestMethod,
    LoanInstallment,
    build_repayment_schedule,
    calculate_loan_schedule,
)
from payroll_kernel.domain.values import add_months, quantize_money, to_decimal
from payroll_kernel.exceptions import StateConflictError
from payroll_kernel.logging_config import get_logger
from payroll_modules.loans.models import Loan, LoanStatus, LoanType

logger = get_logger("modules.loans.helpers")


def new_loan(
    loan_id: UUID,
    staff_id: UUID,
    loan_type: LoanType,
    principal: Decimal,
    interest_rate: Decimal,
    number_of_installments: int,
    start_date: date,
    method: InterestMethod = InterestMethod.FLAT,
    cooperative_id: UUID | None = None,
    notes: str | None = None,
    created_by: UUID | None = None,
) -> Loan:
    """Build an active loan with its schedule terms filled in."""
    principal = quantize_money(to_decimal(principal))
    interest_rate = to_decimal(interest_rate)
    summary = calculate_loan_schedule(principal, interest_rate, number_of_installments, method)
    return Loan(
        id=loan_id,
        staff_id=staff_id,
        loan_type=LoanType(loan_type),
        principal=principal,
        interest_rate=interest_rate,
        method=InterestMethod(method),
        number_of_installments=number_of_installments,
        monthly_principal=summary.monthly_principal,
        monthly_interest=summary.monthly_interest,
        monthly_total=summary.monthly_total,
        total_interest=summary.total_interest,
        remaining_balance=principal,
        start_date=start_date,
        end_date=add_months(start_date, number_of_installments - 1),
        cooperative_id=cooperative_id,
        notes=notes,
        created_by=created_by,
    )


def repayment_schedule(loan: Loan) -> tuple[LoanInstallment, ...]:
    """The loan's full schedule with paid rows flagged."""
    return build_repayment_schedule(
        loan.principal,
        loan.interest_rate,
        loan.number_of_installments,
        loan.method,
        start_date=loan.start_date,
        installments_paid=loan.installments_paid,
    )


def next_installment(loan: Loan) -> LoanInstallment | None:
    if loan.installments_paid >= loan.number_of_installments:
        return None
    return repayment_schedule(loan)[loan.installments_paid]


def apply_installment(loan: Loan) -> Loan:
    """
    Record one paid installment.

    The balance drops by the installment's scheduled principal component; the
    final installment clears any rounding residual.  The loan becomes
    ``paid_off`` when the balance reaches zero.

    Raises:
        StateConflictError: the loan is not active.
    """
    if loan.status != LoanStatus.ACTIVE:
        raise StateConflictError(
            f"Cannot apply an installment to loan {loan.id} in status '{loan.status.value}'",
            entity_type="loan",
            entity_id=loan.id,
        )
    installment = next_installment(loan)
    if installment is None:
        raise StateConflictError(
            f"Loan {loan.id} has no outstanding installments",
            entity_type="loan",
            entity_id=loan.id,
        )

    remaining = installment.remaining_balance
    paid = loan.installments_paid + 1
    status = LoanStatus.PAID_OFF if remaining <= 0 or paid >= loan.number_of_installments else loan.status
    if status == LoanStatus.PAID_OFF:
        remaining = Decimal("0.00")

    logger.debug(
        "loan_installment_computed",
        extra={
            "loan_id": str(loan.id),
            "installment_number": installment.number,
            "principal_component": str(installment.principal),
            "remaining_balance": str(remaining),
        },
    )
    return replace(
        loan,
        remaining_balance=remaining,
        installments_paid=paid,
        status=status,
    )


def reschedule(
    loan: Loan,
    principal: Decimal | None = None,
    interest_rate: Decimal | None = None,
    number_of_installments: int | None = None,
    method: InterestMethod | None = None,
) -> Loan:
    """Recompute schedule terms for an unpaid loan."""
    principal = quantize_money(to_decimal(principal)) if principal is not None else loan.principal
    rate = to_decimal(interest_rate) if interest_rate is not None else loan.interest_rate
    count = number_of_installments if number_of_installments is not None else loan.number_of_installments
    method = InterestMethod(method) if method is not None else loan.method
    summary = calculate_loan_schedule(principal, rate, count, method)
    return replace(
        loan,
        principal=principal,
        interest_rate=rate,
        number_of_installments=count,
        method=method,
        monthly_principal=summary.monthly_principal,
        monthly_interest=summary.monthly_interest,
        monthly_total=summary.monthly_total,
        total_interest=summary.total_interest,
        remaining_balance=principal,
        end_date=add_months(loan.start_date, count - 1),
    )
