"""Payroll Run Workflow.

State machine for the payroll run approval lifecycle and the pure
transition planner used by ``PayrollRunService``.

    (none) --create--> draft --submit--> pending_review --approve--> approved
                         ^                    |                          |
                         +------reject--------+                       process
                         |                                               v
                         +-----------------reopen------------------ processed
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any

from payroll_kernel.domain.roles import (
    ADMIN_ROLES,
    APPROVER_ROLES,
    Actor,
    Capability,
    Role,
    require_capability,
)
from payroll_kernel.domain.workflow import (
    AuditRecord,
    Notification,
    NotificationType,
    NotifyRoles,
    Transition,
    Workflow,
    WorkflowStep,
)
from payroll_kernel.exceptions import InvalidTransitionError
from payroll_kernel.logging_config import get_logger
from payroll_modules.payroll.models import PayrollRun, PayrollRunStatus

logger = get_logger("modules.payroll.workflows")

RESOURCE = "payroll_runs"

DRAFT = PayrollRunStatus.DRAFT.value
PENDING_REVIEW = PayrollRunStatus.PENDING_REVIEW.value
APPROVED = PayrollRunStatus.APPROVED.value
PROCESSED = PayrollRunStatus.PROCESSED.value

CREATE_ACTION = "create"
CREATE_AUDIT_ACTION = "payroll_created"
RECALCULATE_ACTION = "rerun"
RECALCULATE_AUDIT_ACTION = "payroll_recalculated"

PAYROLL_RUN_WORKFLOW = Workflow(
    name="payroll_run",
    description="Payroll run approval lifecycle",
    initial_state=DRAFT,
    states=(DRAFT, PENDING_REVIEW, APPROVED, PROCESSED),
    transitions=(
        Transition(DRAFT, PENDING_REVIEW, "submit", Capability.SUBMIT_RUN, "payroll_submitted"),
        Transition(PENDING_REVIEW, APPROVED, "approve", Capability.APPROVE_RUN, "payroll_approved"),
        Transition(PENDING_REVIEW, DRAFT, "reject", Capability.REJECT_RUN, "payroll_rejected"),
        Transition(APPROVED, PROCESSED, "process", Capability.PROCESS_RUN, "payroll_processed"),
        Transition(PROCESSED, DRAFT, "reopen", Capability.REOPEN_RUN, "payroll_reopened"),
    ),
)

ACTION_CAPABILITIES: dict[str, Capability] = {
    t.action: t.capability for t in PAYROLL_RUN_WORKFLOW.transitions
}

logger.info(
    "payroll_run_workflow_registered",
    extra={
        "workflow_name": PAYROLL_RUN_WORKFLOW.name,
        "state_count": len(PAYROLL_RUN_WORKFLOW.states),
        "transition_count": len(PAYROLL_RUN_WORKFLOW.transitions),
        "initial_state": PAYROLL_RUN_WORKFLOW.initial_state,
    },
)


def _role_values(roles: tuple[Role, ...]) -> tuple[str, ...]:
    return tuple(r.value for r in roles)


def _comment_suffix(label: str, text: str | None) -> str:
    return f" {label}: {text}" if text else ""


def _notifications_for(
    action: str,
    run: PayrollRun,
    comments: str | None,
    approver_roles: tuple[Role, ...],
    admin_roles: tuple[Role, ...],
) -> tuple[Notification | NotifyRoles, ...]:
    if action == "submit":
        return (
            NotifyRoles(
                roles=_role_values(approver_roles),
                title="Payroll Pending Review",
                message=f"Payroll for {run.period} has been submitted for review.",
                type=NotificationType.INFO,
            ),
        )
    if action in ("approve", "reject"):
        if run.created_by is None:
            return ()
        verb = "approved" if action == "approve" else "rejected"
        return (
            Notification(
                user_id=run.created_by,
                title=f"Payroll {verb.capitalize()}",
                message=(
                    f"Your payroll run for {run.period} has been {verb}."
                    + _comment_suffix("Comments", comments)
                ),
                type=NotificationType.SUCCESS if action == "approve" else NotificationType.WARNING,
            ),
        )
    if action == "process":
        return (
            NotifyRoles(
                roles=_role_values(admin_roles),
                title="Payroll Processed",
                message=f"Payroll for {run.period} has been finalized and processed.",
                type=NotificationType.SUCCESS,
            ),
        )
    if action == "reopen":
        return (
            NotifyRoles(
                roles=_role_values(admin_roles),
                title="Payroll Reopened",
                message=(
                    f"Payroll for {run.period} has been reopened."
                    + _comment_suffix("Reason", comments)
                ),
                type=NotificationType.WARNING,
            ),
        )
    return ()


def plan_create(run: PayrollRun, actor: Actor, now: datetime) -> WorkflowStep[PayrollRun]:
    """Plan the creation of a draft run."""
    require_capability(actor, Capability.CREATE_RUN)
    created = replace(
        run,
        status=PayrollRunStatus.DRAFT,
        created_by=actor.user_id,
        created_at=now,
        version=1,
    )
    audit = AuditRecord(
        action=CREATE_AUDIT_ACTION,
        resource=RESOURCE,
        resource_id=str(created.id),
        old_values=None,
        new_values={"period": created.period, **created.snapshot()},
        actor_id=actor.user_id,
        occurred_at=now,
    )
    return WorkflowStep(
        entity=created,
        action=CREATE_ACTION,
        from_state="",
        to_state=DRAFT,
        audit=(audit,),
    )


def plan_transition(
    run: PayrollRun,
    action: str,
    actor: Actor,
    now: datetime,
    comments: str | None = None,
    changes: dict[str, Any] | None = None,
    approver_roles: tuple[Role, ...] = APPROVER_ROLES,
    admin_roles: tuple[Role, ...] = ADMIN_ROLES,
) -> WorkflowStep[PayrollRun]:
    """
    Resolve ``action`` against the run's current status.

    Pure: returns the post-transition run (version incremented) together with
    the audit record and notification intents.  ``changes`` carries extra
    field updates that ride on the transition (totals on process, resets on
    reopen).

    The capability is checked before the run's status.

    Raises:
        UnauthorizedActorError: actor lacks the action's capability.
        InvalidTransitionError: action not allowed from the current status.
    """
    capability = ACTION_CAPABILITIES.get(action)
    if capability is None:
        raise InvalidTransitionError("payroll_run", run.id, run.status.value, action)
    require_capability(actor, capability)

    transition = PAYROLL_RUN_WORKFLOW.find_transition(run.status.value, action)
    if transition is None:
        raise InvalidTransitionError("payroll_run", run.id, run.status.value, action)

    updates: dict[str, Any] = dict(changes or {})
    if action == "approve":
        updates.setdefault("approved_by", actor.user_id)
    elif action in ("reject", "reopen"):
        updates.setdefault("approved_by", None)
    if action == "process":
        updates.setdefault("processed_at", now)
    elif action == "reopen":
        updates.setdefault("processed_at", None)

    updated = replace(
        run,
        status=PayrollRunStatus(transition.to_state),
        version=run.version + 1,
        **updates,
    )

    new_values: dict[str, Any] = updated.snapshot()
    if comments:
        new_values["comments" if action != "reopen" else "reason"] = comments

    audit = AuditRecord(
        action=transition.audit_action,
        resource=RESOURCE,
        resource_id=str(run.id),
        old_values=run.snapshot(),
        new_values=new_values,
        actor_id=actor.user_id,
        occurred_at=now,
    )

    return WorkflowStep(
        entity=updated,
        action=action,
        from_state=transition.from_state,
        to_state=transition.to_state,
        audit=(audit,),
        notifications=_notifications_for(
            action, updated, comments, approver_roles, admin_roles,
        ),
    )


def plan_recalculate(
    run: PayrollRun, totals: dict[str, Any], actor: Actor, now: datetime,
) -> WorkflowStep[PayrollRun]:
    """
    Plan a draft run's refreshed preview totals.

    The status stays ``draft``; the version still moves so a concurrent
    submit or rerun loses its compare-and-set.
    """
    require_capability(actor, Capability.RERUN_RUN)
    updated = replace(run, version=run.version + 1, **totals)
    audit = AuditRecord(
        action=RECALCULATE_AUDIT_ACTION,
        resource=RESOURCE,
        resource_id=str(run.id),
        old_values=run.snapshot(),
        new_values=updated.snapshot(),
        actor_id=actor.user_id,
        occurred_at=now,
    )
    return WorkflowStep(
        entity=updated,
        action=RECALCULATE_ACTION,
        from_state=run.status.value,
        to_state=updated.status.value,
        audit=(audit,),
    )
