"""
Leave Module (``payroll_modules.leave``).

Leave types, yearly balances with a monthly accrual ledger, and the leave
request approval workflow.  ``LeaveService`` lives in
``payroll_modules.leave.service``.
"""

from payroll_modules.leave.config import LeaveConfig
from payroll_modules.leave.models import (
    AccrualReport,
    LeaveAccrualEntry,
    LeaveBalance,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveType,
    PayrollPeriodLeave,
)
from payroll_modules.leave.workflows import LEAVE_REQUEST_WORKFLOW

__all__ = [
    "AccrualReport",
    "LeaveAccrualEntry",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveRequestStatus",
    "LeaveType",
    "PayrollPeriodLeave",
    "LEAVE_REQUEST_WORKFLOW",
    "LeaveConfig",
]
