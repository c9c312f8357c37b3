"""
Payroll Run Module (``payroll_modules.payroll``).

Responsibility
--------------
Monthly payroll runs: creation with preview totals, review and approval,
atomic processing into payslips, and the audited reopen override.

Architecture position
---------------------
**Modules layer** -- models, a pure workflow planner and config here; the
``PayrollRunService`` facade in ``payroll_modules.payroll.service`` delegates
all arithmetic to ``payroll_engines.payslip``.

Invariants enforced
-------------------
* Processed runs are locked until reopened.
* Run totals equal the sums over the run's payslips.
* Every transition is a compare-and-set on (status, version).
"""

from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.models import (
    PayrollComputation,
    PayrollRun,
    PayrollRunStatus,
    Payslip,
    ProcessResult,
    ReopenResult,
    SalaryStructureEntry,
    SkippedStaff,
)
from payroll_modules.payroll.workflows import PAYROLL_RUN_WORKFLOW

__all__ = [
    "PayrollComputation",
    "PayrollRun",
    "PayrollRunStatus",
    "Payslip",
    "ProcessResult",
    "ReopenResult",
    "SalaryStructureEntry",
    "SkippedStaff",
    "PAYROLL_RUN_WORKFLOW",
    "PayrollConfig",
]
