"""
Tests for the gross-to-net pipeline.

Covers:
- Classification of adjustment lines (gross components, loans, cooperatives)
- The worked GL10 Step 5 field officer example
- Gross / total / net invariants
- Fallback salary flagging
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_engines.payslip import AdjustmentLine, build_pay_inputs, compute_payslip
from payroll_engines.salary import DEFAULT_SALARY_SCALE, AllowanceRule, DeductionRule, RuleKind
from payroll_kernel.exceptions import SalaryStructureNotFoundError

ALLOWANCE_RULES = [
    AllowanceRule(name="Housing Allowance", kind=RuleKind.PERCENTAGE, value=Decimal("20")),
    AllowanceRule(name="Hazard Allowance", kind=RuleKind.PERCENTAGE, value=Decimal("10")),
]
DEDUCTION_RULES = [
    DeductionRule(name="PAYE Tax", kind=RuleKind.PERCENTAGE, value=Decimal("0")),
    DeductionRule(name="Pension", kind=RuleKind.PERCENTAGE, value=Decimal("8")),
    DeductionRule(name="NHF", kind=RuleKind.PERCENTAGE, value=Decimal("2.5")),
]


class TestBuildPayInputs:

    def test_gross_components_extracted(self):
        inputs = build_pay_inputs(
            uuid4(), 10, 5, "Field Officer",
            allowance_lines=[
                AdjustmentLine("Overtime", Decimal("5000")),
                AdjustmentLine("bonus", Decimal("2000")),
                AdjustmentLine("Arrears", Decimal("1000")),
                AdjustmentLine("Acting Allowance", Decimal("3000")),
            ],
        )
        assert inputs.overtime == Decimal("5000")
        assert inputs.bonus == Decimal("2000")
        assert inputs.arrears == Decimal("1000")
        assert inputs.individual_allowances == {"acting_allowance": Decimal("3000")}

    def test_deduction_lines_classified(self):
        inputs = build_pay_inputs(
            uuid4(), 10, 5, "Field Officer",
            deduction_lines=[
                AdjustmentLine("Salary Advance", Decimal("4000")),
                AdjustmentLine("Repayment", Decimal("1500"), is_loan_repayment=True),
                AdjustmentLine("Cooperative Savings", Decimal("2500")),
                AdjustmentLine("Fine", Decimal("500")),
                AdjustmentLine("fine", Decimal("250")),
            ],
        )
        assert inputs.loans == Decimal("5500")
        assert inputs.cooperatives == Decimal("2500")
        assert inputs.individual_deductions == {"fine": Decimal("750")}


class TestComputePayslip:

    def test_field_officer_worked_example(self):
        inputs = build_pay_inputs(uuid4(), 10, 5, "Field Officer")
        calc = compute_payslip(inputs, DEFAULT_SALARY_SCALE, ALLOWANCE_RULES, DEDUCTION_RULES)

        assert calc.basic_salary == Decimal("140000.00")
        assert calc.allowances == {
            "housing_allowance": Decimal("28000.00"),
            "hazard_allowance": Decimal("14000.00"),
        }
        assert calc.gross_pay == Decimal("182000.00")
        assert calc.deductions["pension"] == Decimal("14560.00")
        assert calc.deductions["nhf"] == Decimal("3500.00")
        assert calc.deductions["paye_tax"] == Decimal("21830.00")
        assert calc.total_deductions == Decimal("39890.00")
        assert calc.net_pay == Decimal("142110.00")
        assert calc.salary_degraded is False

    def test_adjustments_flow_into_gross_and_deductions(self):
        inputs = build_pay_inputs(
            uuid4(), 1, 1, "Clerk",
            allowance_lines=[AdjustmentLine("Overtime", Decimal("4000"))],
            deduction_lines=[AdjustmentLine("Salary Advance", Decimal("3000"))],
        )
        calc = compute_payslip(inputs, DEFAULT_SALARY_SCALE, ALLOWANCE_RULES, DEDUCTION_RULES)

        assert calc.overtime == Decimal("4000.00")
        assert calc.gross_pay == Decimal("30000") + Decimal("6000") + Decimal("0") + Decimal("4000")
        assert calc.deductions["loan_repayment"] == Decimal("3000.00")

    def test_invariants_hold(self):
        inputs = build_pay_inputs(
            uuid4(), 10, 5, "Field Officer",
            allowance_lines=[AdjustmentLine("Acting Allowance", Decimal("1234.56"))],
            deduction_lines=[AdjustmentLine("Fine", Decimal("99.99"))],
        )
        calc = compute_payslip(inputs, DEFAULT_SALARY_SCALE, ALLOWANCE_RULES, DEDUCTION_RULES)

        assert calc.gross_pay == (
            calc.basic_salary
            + sum(calc.merged_allowances().values())
            + calc.arrears + calc.overtime + calc.bonus
        )
        assert calc.total_deductions == sum(calc.merged_deductions().values())
        assert calc.net_pay == calc.gross_pay - calc.total_deductions

    def test_missing_salary_raises_without_fallback(self):
        inputs = build_pay_inputs(uuid4(), 4, 2, "Clerk")
        with pytest.raises(SalaryStructureNotFoundError):
            compute_payslip(inputs, DEFAULT_SALARY_SCALE, ALLOWANCE_RULES, DEDUCTION_RULES)

    def test_fallback_marks_calculation_degraded(self):
        inputs = build_pay_inputs(uuid4(), 4, 2, "Clerk")
        calc = compute_payslip(
            inputs, DEFAULT_SALARY_SCALE, ALLOWANCE_RULES, DEDUCTION_RULES,
            allow_salary_fallback=True,
        )
        assert calc.salary_degraded is True
        assert calc.basic_salary == Decimal("66000.00")
