"""
Loan Amortization Engine - flat and reducing-balance repayment schedules.

Pure functions with no I/O.  ``annual_rate`` is a percentage (10 = 10% p.a.).

Flat method:
    Interest is charged on the original principal for the whole term:
    ``total_interest = principal x rate/100 x installments/12``, spread evenly.
    Each installment repays ``principal / installments``.

Reducing-balance method:
    Standard equal-installment (EMI) amortization at ``rate/100/12`` per month.
    Each period's interest is charged on the outstanding balance; the rest of
    the installment repays principal.

Rounding:
    Every schedule amount is quantized to 0.01.  The rounding remainder is
    placed in the final installment, so the final remaining balance is exactly
    zero and the principal components sum exactly to the principal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from payroll_kernel.domain.values import ZERO, add_months, quantize_money, to_decimal
from payroll_kernel.exceptions import ValidationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.amortization")

MONTHS_PER_YEAR = Decimal("12")
HUNDRED = Decimal("100")


class InterestMethod(str, Enum):
    FLAT = "flat"
    REDUCING = "reducing"


@dataclass(frozen=True)
class LoanScheduleSummary:
    """Per-month terms of a loan.

    For the reducing method ``monthly_total`` is the level installment and
    ``monthly_principal`` / ``monthly_interest`` are term averages.
    """

    monthly_principal: Decimal
    monthly_interest: Decimal
    monthly_total: Decimal
    total_interest: Decimal


@dataclass(frozen=True)
class LoanInstallment:
    """One row of a repayment schedule."""

    number: int
    due_date: date | None
    principal: Decimal
    interest: Decimal
    total: Decimal
    remaining_balance: Decimal
    is_paid: bool = False


def _validate_terms(principal: Decimal, annual_rate: Decimal, installments: int) -> None:
    if principal <= 0:
        raise ValidationError("Loan principal must be positive", field="principal")
    if annual_rate < 0:
        raise ValidationError("Interest rate cannot be negative", field="interest_rate")
    if installments < 1:
        raise ValidationError(
            "Number of installments must be at least 1",
            field="number_of_installments",
        )


def _coerce_method(method: InterestMethod | str) -> InterestMethod:
    try:
        return InterestMethod(method)
    except ValueError as exc:
        raise ValidationError(f"Unknown interest method '{method}'", field="method") from exc


def _level_installment(principal: Decimal, monthly_rate: Decimal, installments: int) -> Decimal:
    growth = (Decimal("1") + monthly_rate) ** installments
    return principal * monthly_rate * growth / (growth - Decimal("1"))


def build_repayment_schedule(
    principal: Decimal,
    annual_rate: Decimal,
    installments: int,
    method: InterestMethod | str = InterestMethod.FLAT,
    start_date: date | None = None,
    installments_paid: int = 0,
) -> tuple[LoanInstallment, ...]:
    """
    Full repayment schedule.

    Postconditions:
        - ``len(result) == installments``
        - ``sum(row.principal) == principal`` (after quantization)
        - ``result[-1].remaining_balance == 0``
        - rows numbered ``<= installments_paid`` are marked ``is_paid``.
    """
    principal = quantize_money(to_decimal(principal))
    annual_rate = to_decimal(annual_rate)
    method = _coerce_method(method)
    _validate_terms(principal, annual_rate, installments)

    monthly_rate = annual_rate / HUNDRED / MONTHS_PER_YEAR
    rows: list[LoanInstallment] = []
    balance = principal

    if method == InterestMethod.REDUCING and monthly_rate > 0:
        level = quantize_money(_level_installment(principal, monthly_rate, installments))
    else:
        level = None
        flat = calculate_loan_schedule(principal, annual_rate, installments, InterestMethod.FLAT)
        flat_interest_total = flat.total_interest if method == InterestMethod.FLAT else ZERO
        flat_interest = flat.monthly_interest if method == InterestMethod.FLAT else ZERO

    for number in range(1, installments + 1):
        is_last = number == installments
        if level is not None:
            interest = quantize_money(balance * monthly_rate)
            principal_part = balance if is_last else min(level - interest, balance)
        else:
            principal_part = balance if is_last else min(flat.monthly_principal, balance)
            interest = (
                flat_interest_total - flat_interest * (installments - 1)
                if is_last
                else flat_interest
            )
        balance -= principal_part
        rows.append(
            LoanInstallment(
                number=number,
                due_date=add_months(start_date, number - 1) if start_date else None,
                principal=principal_part,
                interest=interest,
                total=principal_part + interest,
                remaining_balance=balance,
                is_paid=number <= installments_paid,
            )
        )

    return tuple(rows)


def calculate_loan_schedule(
    principal: Decimal,
    annual_rate: Decimal,
    installments: int,
    method: InterestMethod | str = InterestMethod.FLAT,
) -> LoanScheduleSummary:
    """
    Monthly terms of a loan.

    Raises:
        ValidationError: non-positive principal, negative rate, fewer than one
            installment, or unknown method.
    """
    principal = quantize_money(to_decimal(principal))
    annual_rate = to_decimal(annual_rate)
    method = _coerce_method(method)
    _validate_terms(principal, annual_rate, installments)

    count = Decimal(installments)
    monthly_principal = quantize_money(principal / count)

    if method == InterestMethod.FLAT:
        total_interest = quantize_money(
            principal * (annual_rate / HUNDRED) * (count / MONTHS_PER_YEAR)
        )
        monthly_interest = quantize_money(total_interest / count)
        monthly_total = monthly_principal + monthly_interest
    elif annual_rate == 0:
        total_interest = ZERO
        monthly_interest = ZERO
        monthly_total = monthly_principal
    else:
        schedule = build_repayment_schedule(principal, annual_rate, installments, method)
        total_interest = sum((row.interest for row in schedule), ZERO)
        monthly_interest = quantize_money(total_interest / count)
        monthly_total = schedule[0].total

    logger.debug(
        "loan_schedule_calculated",
        extra={
            "principal": str(principal),
            "annual_rate": str(annual_rate),
            "installments": installments,
            "method": method.value,
            "monthly_total": str(monthly_total),
            "total_interest": str(total_interest),
        },
    )

    return LoanScheduleSummary(
        monthly_principal=monthly_principal,
        monthly_interest=monthly_interest,
        monthly_total=monthly_total,
        total_interest=total_interest,
    )
