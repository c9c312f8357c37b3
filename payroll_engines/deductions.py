"""
Deduction Engine - statutory and ad-hoc deductions from gross pay.

Pure functions with no I/O.

Rule semantics:
    - name contains "paye" or "tax": monthly PAYE on gross pay (``tax`` engine).
    - percentage rules: base is basic salary for "nhf" rules, gross otherwise.
    - fixed rules: the configured value.
    - ``loan_repayment`` / ``cooperative_deduction`` lines are appended when
      the corresponding totals are positive.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from payroll_engines.salary import DeductionRule, RuleKind
from payroll_engines.tax import calculate_paye
from payroll_kernel.domain.values import ZERO, normalize_key, quantize_money, sum_amounts, to_decimal

LOAN_REPAYMENT_KEY = "loan_repayment"
COOPERATIVE_DEDUCTION_KEY = "cooperative_deduction"


def is_tax_rule(rule_name: str) -> bool:
    name = rule_name.lower()
    return "paye" in name or "tax" in name


def calculate_deductions(
    basic_salary: Decimal,
    gross_pay: Decimal,
    deduction_rules: Iterable[DeductionRule],
    loans: Decimal = ZERO,
    cooperatives: Decimal = ZERO,
) -> dict[str, Decimal]:
    """
    Deduction breakdown for one staff member.

    Postconditions:
        - Only active rules contribute.
        - Amounts are quantized to 0.01.
        - ``loan_repayment`` / ``cooperative_deduction`` present only when > 0.
    """
    deductions: dict[str, Decimal] = {}

    for rule in deduction_rules:
        if not rule.is_active:
            continue
        if is_tax_rule(rule.name):
            amount = calculate_paye(gross_pay)
        elif rule.kind == RuleKind.PERCENTAGE:
            base = basic_salary if "nhf" in rule.name.lower() else gross_pay
            amount = base * (rule.value / Decimal("100"))
        else:
            amount = rule.value
        deductions[normalize_key(rule.name)] = quantize_money(amount)

    loans = to_decimal(loans)
    cooperatives = to_decimal(cooperatives)
    if loans > 0:
        deductions[LOAN_REPAYMENT_KEY] = quantize_money(loans)
    if cooperatives > 0:
        deductions[COOPERATIVE_DEDUCTION_KEY] = quantize_money(cooperatives)

    return deductions


def total_deductions(deductions: Mapping[str, Decimal]) -> Decimal:
    return sum_amounts(deductions.values())
