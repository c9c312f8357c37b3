"""
Canonical workflow types (``payroll_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines and for the side-effect
*intents* a transition produces.  A transition is planned as a
``WorkflowStep``: the mutated entity plus the audit records and notifications
to dispatch.  Planning is pure; services apply the mutation and dispatch the
intents.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* At most one transition per (from_state, action).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from payroll_kernel.domain.roles import Capability

T = TypeVar("T")


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``capability`` is the permission the actor must hold.
    ``audit_action`` names the audit record emitted when the transition fires.
    """
    from_state: str
    to_state: str
    action: str
    capability: Capability
    audit_action: str


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Guarantees: ``initial_state`` is a member of ``states``; every transition
    references known states.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"initial_state '{self.initial_state}' not in states of {self.name}"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Transition {t.action} references unknown state in {self.name}"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(f"Duplicate transition {key} in {self.name}")
            seen.add(key)

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)


# =========================================================================
# Side-effect intents
# =========================================================================


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class AuditRecord:
    """One audit trail entry: ``{action, resource, resourceId, old, new}``."""
    action: str
    resource: str
    resource_id: str | None
    old_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    actor_id: UUID | None = None
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class Notification:
    """A message for one user."""
    user_id: UUID
    title: str
    message: str
    type: NotificationType = NotificationType.INFO


@dataclass(frozen=True)
class NotifyRoles:
    """Notification intent addressed to every user holding one of ``roles``.

    Resolved to concrete ``Notification`` rows by the service, which owns
    the user lookup.
    """
    roles: tuple[str, ...]
    title: str
    message: str
    type: NotificationType = NotificationType.INFO


@dataclass(frozen=True)
class WorkflowStep(Generic[T]):
    """Result of planning a transition.

    Contract: ``entity`` is the post-transition record.  ``audit`` and
    ``notifications`` are mandatory outputs of the transition but are not
    applied by the planner.
    """
    entity: T
    action: str
    from_state: str
    to_state: str
    audit: tuple[AuditRecord, ...] = ()
    notifications: tuple[Notification | NotifyRoles, ...] = field(default_factory=tuple)
