"""
Leave Configuration Schema.

Weekend definition for working-day counts and balance initialization policy.
"""

from dataclasses import dataclass, field
from typing import Self

from payroll_engines.calendar import WEEKEND_ISO_DAYS
from payroll_kernel.domain.roles import ADMIN_ROLES, Role
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.leave.config")


@dataclass
class LeaveConfig:
    """
    Configuration schema for the leave ledger.

        config = LeaveConfig(weekend_days=frozenset({5, 6}))
    """

    # ISO weekday numbers (Monday=1 .. Sunday=7) that are not working days
    weekend_days: frozenset[int] = field(default_factory=lambda: WEEKEND_ISO_DAYS)

    # New balances accrue accrual_rate x month-of-year instead of zero
    prorate_on_initialize: bool = True

    # Who is told about new requests
    approver_roles: tuple[Role, ...] = ADMIN_ROLES

    def __post_init__(self):
        self.weekend_days = frozenset(self.weekend_days)
        if not all(1 <= d <= 7 for d in self.weekend_days):
            raise ValueError(
                f"weekend_days must be ISO weekday numbers 1-7, got {sorted(self.weekend_days)}"
            )
        if len(self.weekend_days) >= 7:
            raise ValueError("weekend_days must leave at least one working day")
        self.approver_roles = tuple(Role(r) for r in self.approver_roles)

        logger.info(
            "leave_config_initialized",
            extra={
                "weekend_days": sorted(self.weekend_days),
                "prorate_on_initialize": self.prorate_on_initialize,
            },
        )

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "leave_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "weekend_days" in data:
            data["weekend_days"] = frozenset(data["weekend_days"])
        if "approver_roles" in data:
            data["approver_roles"] = tuple(data["approver_roles"])
        return cls(**data)
