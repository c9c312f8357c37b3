"""
Loans Module (``payroll_modules.loans``).

Staff loans (salary advance, cooperative, personal) with flat or reducing
balance schedules, and the cooperative organizations that lend.
"""

from payroll_modules.loans.models import CooperativeOrganization, Loan, LoanStatus, LoanType

__all__ = [
    "CooperativeOrganization",
    "Loan",
    "LoanStatus",
    "LoanType",
]
