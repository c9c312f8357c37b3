"""
Adjustments Module (``payroll_modules.adjustments``).

One-off allowances for a single period and recurring deductions with an
optional recovery target, plus the per-period deduction application ledger.
"""

from payroll_modules.adjustments.models import (
    AllowanceStatus,
    DeductionApplication,
    DeductionStatus,
    IndividualAllowance,
    IndividualDeduction,
)

__all__ = [
    "AllowanceStatus",
    "DeductionApplication",
    "DeductionStatus",
    "IndividualAllowance",
    "IndividualDeduction",
]
