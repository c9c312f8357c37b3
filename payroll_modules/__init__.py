"""
Payroll Modules.

Orchestration layers over the payroll kernel and engines.
Each module contains:
- Domain models (the nouns)
- Workflows (state machines with pure transition planners)
- Configuration schemas (policy and settings)
- ORM companions and a service facade

Modules:
- Staff: Staff members, departments, user accounts
- Payroll: Payroll runs, payslips, approval lifecycle
- Leave: Leave types, balances, monthly accrual, requests
- Loans: Staff loans, cooperatives, repayment schedules
- Adjustments: Individual allowances and deductions

Services are imported from their ``service`` modules; ``SessionContext``
in ``payroll_modules.context`` wires them together.
"""

from payroll_modules import (
    staff,
    payroll,
    leave,
    loans,
    adjustments,
)

__all__ = [
    "staff",
    "payroll",
    "leave",
    "loans",
    "adjustments",
]
