"""
Payroll Configuration Schema.

Defines the structure and sensible defaults for payroll run settings.
Actual values are loaded from deployment configuration at runtime.
"""

from dataclasses import dataclass
from typing import Self

from payroll_kernel.domain.roles import ADMIN_ROLES, APPROVER_ROLES, Role
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.config")


@dataclass
class PayrollConfig:
    """
    Configuration schema for payroll runs.

    Override at instantiation with deployment-specific values:

        config = PayrollConfig(
            allow_salary_fallback=True,
            **load_from_settings("payroll"),
        )
    """

    # Missing grade/step rows: error (False) or flagged fallback formula (True)
    allow_salary_fallback: bool = False

    # Staff with status on_leave are included in runs
    pay_on_leave_staff: bool = True

    # Reporting currency (ISO 4217)
    currency: str = "NGN"

    # Notification audiences
    approver_roles: tuple[Role, ...] = APPROVER_ROLES
    admin_roles: tuple[Role, ...] = ADMIN_ROLES

    def __post_init__(self):
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"currency must be a 3-letter code, got '{self.currency}'")

        self.approver_roles = tuple(Role(r) for r in self.approver_roles)
        self.admin_roles = tuple(Role(r) for r in self.admin_roles)
        if not self.approver_roles:
            raise ValueError("approver_roles cannot be empty")
        if Role.STAFF in self.approver_roles:
            raise ValueError("staff cannot be an approver role")

        logger.info(
            "payroll_config_initialized",
            extra={
                "allow_salary_fallback": self.allow_salary_fallback,
                "pay_on_leave_staff": self.pay_on_leave_staff,
                "currency": self.currency,
                "approver_roles": [r.value for r in self.approver_roles],
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("payroll_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from database/file)."""
        logger.info(
            "payroll_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        for key in ("approver_roles", "admin_roles"):
            if key in data:
                data[key] = tuple(data[key])
        return cls(**data)
