"""
Staff Module (``payroll_modules.staff``).

Staff members, departments and user accounts referenced by the payroll,
leave, loan and adjustment modules.
"""

from payroll_modules.staff.models import Department, Staff, StaffStatus, UserAccount

__all__ = [
    "Department",
    "Staff",
    "StaffStatus",
    "UserAccount",
]
