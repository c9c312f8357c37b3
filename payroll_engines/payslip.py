"""
Payslip Engine - gross-to-net computation for one staff member.

Pure function composition of the salary, allowance, deduction and tax
engines.  The caller supplies the reference data (salary table, rules) and
the staff member's ad-hoc adjustment lines for the period.

Pipeline:
    basic salary
      -> rule allowances (+ individual allowances)
      -> gross = basic + allowances + arrears + overtime + bonus
      -> rule deductions (PAYE on gross, loan / cooperative totals)
      -> individual deductions
      -> net = gross - total deductions

Adjustment lines are classified by normalized type:
    allowances:  arrears / overtime / bonus are carried as separate gross
                 components; everything else is an individual allowance.
    deductions:  loan repayments (flagged, or type mentions "loan"/"advance")
                 feed ``loan_repayment``; types mentioning "cooperative" feed
                 ``cooperative_deduction``; everything else is an individual
                 deduction.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from payroll_engines.deductions import calculate_deductions, total_deductions
from payroll_engines.salary import (
    AllowanceRule,
    DeductionRule,
    SalaryTable,
    calculate_allowances,
    resolve_basic_salary,
    total_allowances,
)
from payroll_kernel.domain.values import ZERO, normalize_key, quantize_money, sum_amounts

GROSS_COMPONENT_TYPES = ("arrears", "overtime", "bonus")
LOAN_MARKERS = ("loan", "advance")
COOPERATIVE_MARKER = "cooperative"


@dataclass(frozen=True)
class AdjustmentLine:
    """One ad-hoc allowance or deduction amount for the period."""

    type: str
    amount: Decimal
    is_loan_repayment: bool = False


@dataclass(frozen=True)
class StaffPayInputs:
    """Everything the pipeline needs about one staff member for one period."""

    staff_id: UUID
    grade_level: int
    step: int
    position: str
    arrears: Decimal = ZERO
    overtime: Decimal = ZERO
    bonus: Decimal = ZERO
    loans: Decimal = ZERO
    cooperatives: Decimal = ZERO
    individual_allowances: Mapping[str, Decimal] = field(default_factory=dict)
    individual_deductions: Mapping[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class PayslipCalculation:
    """Result of the gross-to-net pipeline for one staff member."""

    staff_id: UUID
    basic_salary: Decimal
    allowances: Mapping[str, Decimal]
    individual_allowances: Mapping[str, Decimal]
    total_allowances: Decimal
    arrears: Decimal
    overtime: Decimal
    bonus: Decimal
    gross_pay: Decimal
    deductions: Mapping[str, Decimal]
    individual_deductions: Mapping[str, Decimal]
    total_deductions: Decimal
    net_pay: Decimal
    salary_degraded: bool = False

    def merged_allowances(self) -> dict[str, Decimal]:
        return _merge(self.allowances, self.individual_allowances)

    def merged_deductions(self) -> dict[str, Decimal]:
        return _merge(self.deductions, self.individual_deductions)


def _merge(first: Mapping[str, Decimal], second: Mapping[str, Decimal]) -> dict[str, Decimal]:
    merged = dict(first)
    for key, amount in second.items():
        merged[key] = merged.get(key, ZERO) + amount
    return merged


def _group(lines: Iterable[AdjustmentLine]) -> dict[str, Decimal]:
    grouped: dict[str, Decimal] = {}
    for line in lines:
        key = normalize_key(line.type)
        grouped[key] = grouped.get(key, ZERO) + line.amount
    return grouped


def is_loan_line(line: AdjustmentLine) -> bool:
    key = normalize_key(line.type)
    return line.is_loan_repayment or any(marker in key for marker in LOAN_MARKERS)


def build_pay_inputs(
    staff_id: UUID,
    grade_level: int,
    step: int,
    position: str,
    allowance_lines: Sequence[AdjustmentLine] = (),
    deduction_lines: Sequence[AdjustmentLine] = (),
) -> StaffPayInputs:
    """Classify a staff member's adjustment lines into pipeline inputs."""
    components = {name: ZERO for name in GROSS_COMPONENT_TYPES}
    other_allowances: list[AdjustmentLine] = []
    for line in allowance_lines:
        key = normalize_key(line.type)
        if key in components:
            components[key] += line.amount
        else:
            other_allowances.append(line)

    loans = ZERO
    cooperatives = ZERO
    other_deductions: list[AdjustmentLine] = []
    for line in deduction_lines:
        if is_loan_line(line):
            loans += line.amount
        elif COOPERATIVE_MARKER in normalize_key(line.type):
            cooperatives += line.amount
        else:
            other_deductions.append(line)

    return StaffPayInputs(
        staff_id=staff_id,
        grade_level=grade_level,
        step=step,
        position=position,
        arrears=components["arrears"],
        overtime=components["overtime"],
        bonus=components["bonus"],
        loans=loans,
        cooperatives=cooperatives,
        individual_allowances=_group(other_allowances),
        individual_deductions=_group(other_deductions),
    )


def compute_payslip(
    inputs: StaffPayInputs,
    salary_table: SalaryTable,
    allowance_rules: Sequence[AllowanceRule],
    deduction_rules: Sequence[DeductionRule],
    allow_salary_fallback: bool = False,
) -> PayslipCalculation:
    """
    Gross-to-net for one staff member.

    Postconditions:
        - ``gross_pay == basic + total_allowances + arrears + overtime + bonus``
        - ``total_deductions == sum(deductions) + sum(individual_deductions)``
        - ``net_pay == gross_pay - total_deductions``

    Raises:
        SalaryStructureNotFoundError: grade/step missing and fallback disabled.
    """
    basic = resolve_basic_salary(
        inputs.grade_level,
        inputs.step,
        salary_table,
        allow_fallback=allow_salary_fallback,
    )
    basic_salary = quantize_money(basic.amount)

    allowances = calculate_allowances(
        basic_salary, allowance_rules, inputs.grade_level, inputs.position
    )
    individual_allowances = {
        key: quantize_money(amount)
        for key, amount in inputs.individual_allowances.items()
    }
    allowance_total = total_allowances(allowances) + sum_amounts(individual_allowances.values())

    arrears = quantize_money(inputs.arrears)
    overtime = quantize_money(inputs.overtime)
    bonus = quantize_money(inputs.bonus)
    gross_pay = basic_salary + allowance_total + arrears + overtime + bonus

    deductions = calculate_deductions(
        basic_salary,
        gross_pay,
        deduction_rules,
        loans=inputs.loans,
        cooperatives=inputs.cooperatives,
    )
    individual_deductions = {
        key: quantize_money(amount)
        for key, amount in inputs.individual_deductions.items()
    }
    deduction_total = total_deductions(deductions) + sum_amounts(individual_deductions.values())

    return PayslipCalculation(
        staff_id=inputs.staff_id,
        basic_salary=basic_salary,
        allowances=allowances,
        individual_allowances=individual_allowances,
        total_allowances=allowance_total,
        arrears=arrears,
        overtime=overtime,
        bonus=bonus,
        gross_pay=gross_pay,
        deductions=deductions,
        individual_deductions=individual_deductions,
        total_deductions=deduction_total,
        net_pay=gross_pay - deduction_total,
        salary_degraded=basic.degraded,
    )
