"""
Roles and capabilities (``payroll_kernel.domain.roles``).

Responsibility
--------------
The enumerated user roles of the payroll application and the capability set
each role grants.  Every workflow guard checks a *capability*, never a list of
role strings, so authorization is decided in exactly one place.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from payroll_kernel.exceptions import UnauthorizedActorError


class Role(str, Enum):
    """Application roles."""

    SUPER_ADMIN = "super_admin"
    ACCOUNT_ADMIN = "account_admin"
    PAYROLL_ADMIN = "payroll_admin"
    STAFF = "staff"


class Capability(str, Enum):
    """Fine-grained permissions consumed by workflow guards."""

    CREATE_RUN = "create_run"
    SUBMIT_RUN = "submit_run"
    RERUN_RUN = "rerun_run"
    APPROVE_RUN = "approve_run"
    REJECT_RUN = "reject_run"
    PROCESS_RUN = "process_run"
    REOPEN_RUN = "reopen_run"
    VIEW_PAYSLIPS = "view_payslips"
    SUBMIT_LEAVE = "submit_leave"
    DECIDE_LEAVE = "decide_leave"
    MANAGE_LEAVE_TYPES = "manage_leave_types"
    RUN_BATCH = "run_batch"
    MANAGE_LOANS = "manage_loans"
    MANAGE_ADJUSTMENTS = "manage_adjustments"


_ADMIN_COMMON = frozenset({
    Capability.VIEW_PAYSLIPS,
    Capability.SUBMIT_LEAVE,
    Capability.DECIDE_LEAVE,
})

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.SUPER_ADMIN: frozenset(Capability),
    Role.ACCOUNT_ADMIN: _ADMIN_COMMON | {
        Capability.APPROVE_RUN,
        Capability.REJECT_RUN,
        Capability.MANAGE_LOANS,
        Capability.MANAGE_ADJUSTMENTS,
    },
    Role.PAYROLL_ADMIN: _ADMIN_COMMON | {
        Capability.CREATE_RUN,
        Capability.SUBMIT_RUN,
        Capability.RERUN_RUN,
        Capability.MANAGE_LEAVE_TYPES,
        Capability.RUN_BATCH,
        Capability.MANAGE_LOANS,
        Capability.MANAGE_ADJUSTMENTS,
    },
    Role.STAFF: frozenset({Capability.SUBMIT_LEAVE}),
}

# Who hears about what
APPROVER_ROLES: tuple[Role, ...] = (Role.SUPER_ADMIN, Role.ACCOUNT_ADMIN)
ADMIN_ROLES: tuple[Role, ...] = (
    Role.SUPER_ADMIN,
    Role.ACCOUNT_ADMIN,
    Role.PAYROLL_ADMIN,
)


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation."""

    user_id: UUID
    role: Role

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def require_capability(actor: Actor, capability: Capability) -> None:
    """Raise ``UnauthorizedActorError`` unless the actor holds the capability."""
    if not actor.can(capability):
        raise UnauthorizedActorError(actor.user_id, actor.role.value, capability.value)
