"""
Module: payroll_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for
    ``payroll_modules``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import payroll_kernel (and sibling engine modules).
    MUST NOT import payroll_modules.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only arithmetic; money is quantized to 0.01 half-up.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from payroll_engines.tax import calculate_paye
    from payroll_engines.payslip import build_pay_inputs, compute_payslip
    from payroll_engines.amortization import calculate_loan_schedule
"""

from payroll_kernel.logging_config import get_logger

logger = get_logger("engines")

from payroll_engines.amortization import (
    InterestMethod,
    LoanInstallment,
    LoanScheduleSummary,
    build_repayment_schedule,
    calculate_loan_schedule,
)
from payroll_engines.calendar import WEEKEND_ISO_DAYS, calculate_working_days, overlap
from payroll_engines.deductions import calculate_deductions, total_deductions
from payroll_engines.payslip import (
    AdjustmentLine,
    PayslipCalculation,
    StaffPayInputs,
    build_pay_inputs,
    compute_payslip,
)
from payroll_engines.salary import (
    AllowanceRule,
    BasicSalary,
    DeductionRule,
    RuleKind,
    calculate_allowances,
    get_basic_salary,
    is_valid_grade_step,
    next_step,
    resolve_basic_salary,
    total_allowances,
)
from payroll_engines.tax import (
    TaxBandLine,
    calculate_annual_paye,
    calculate_paye,
    paye_band_breakdown,
    taxable_income,
)

__all__ = [
    # Amortization
    "InterestMethod",
    "LoanInstallment",
    "LoanScheduleSummary",
    "build_repayment_schedule",
    "calculate_loan_schedule",
    # Calendar
    "WEEKEND_ISO_DAYS",
    "calculate_working_days",
    "overlap",
    # Deductions
    "calculate_deductions",
    "total_deductions",
    # Payslip
    "AdjustmentLine",
    "PayslipCalculation",
    "StaffPayInputs",
    "build_pay_inputs",
    "compute_payslip",
    # Salary
    "AllowanceRule",
    "BasicSalary",
    "DeductionRule",
    "RuleKind",
    "calculate_allowances",
    "get_basic_salary",
    "is_valid_grade_step",
    "next_step",
    "resolve_basic_salary",
    "total_allowances",
    # Tax
    "TaxBandLine",
    "calculate_annual_paye",
    "calculate_paye",
    "paye_band_breakdown",
    "taxable_income",
]
