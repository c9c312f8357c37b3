"""Leave Request Workflow.

    pending --approve--> approved
    pending --reject---> rejected
    pending --cancel---> cancelled

All three end states are terminal.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from payroll_kernel.domain.roles import Actor, Capability, require_capability
from payroll_kernel.domain.workflow import (
    AuditRecord,
    Notification,
    NotificationType,
    Transition,
    Workflow,
    WorkflowStep,
)
from payroll_kernel.exceptions import InvalidTransitionError
from payroll_kernel.logging_config import get_logger
from payroll_modules.leave.models import LeaveRequest, LeaveRequestStatus

logger = get_logger("modules.leave.workflows")

RESOURCE = "leave_requests"

PENDING = LeaveRequestStatus.PENDING.value
APPROVED = LeaveRequestStatus.APPROVED.value
REJECTED = LeaveRequestStatus.REJECTED.value
CANCELLED = LeaveRequestStatus.CANCELLED.value

LEAVE_REQUEST_WORKFLOW = Workflow(
    name="leave_request",
    description="Leave request approval lifecycle",
    initial_state=PENDING,
    states=(PENDING, APPROVED, REJECTED, CANCELLED),
    transitions=(
        Transition(PENDING, APPROVED, "approve", Capability.DECIDE_LEAVE, "leave_request_approved"),
        Transition(PENDING, REJECTED, "reject", Capability.DECIDE_LEAVE, "leave_request_rejected"),
        Transition(PENDING, CANCELLED, "cancel", Capability.SUBMIT_LEAVE, "leave_request_cancelled"),
    ),
    terminal_states=(APPROVED, REJECTED, CANCELLED),
)

STATUS_ACTIONS = {
    LeaveRequestStatus.APPROVED: "approve",
    LeaveRequestStatus.REJECTED: "reject",
    LeaveRequestStatus.CANCELLED: "cancel",
}

logger.info(
    "leave_request_workflow_registered",
    extra={
        "workflow_name": LEAVE_REQUEST_WORKFLOW.name,
        "state_count": len(LEAVE_REQUEST_WORKFLOW.states),
        "transition_count": len(LEAVE_REQUEST_WORKFLOW.transitions),
    },
)


def plan_leave_transition(
    request: LeaveRequest,
    action: str,
    actor: Actor,
    now: datetime,
    comments: str | None = None,
    notify_user_id=None,
    leave_type_name: str = "leave",
) -> WorkflowStep[LeaveRequest]:
    """
    Resolve a decision or cancellation on a pending request.

    Raises:
        UnauthorizedActorError: actor lacks the transition's capability.
        InvalidTransitionError: the request is no longer pending.
    """
    transition = LEAVE_REQUEST_WORKFLOW.find_transition(request.status.value, action)
    if transition is None:
        raise InvalidTransitionError("leave_request", request.id, request.status.value, action)
    require_capability(actor, transition.capability)

    new_status = LeaveRequestStatus(transition.to_state)
    if action == "cancel":
        updated = replace(request, status=new_status)
    else:
        updated = replace(
            request,
            status=new_status,
            approved_by=actor.user_id,
            approval_comments=comments or request.approval_comments,
            decided_at=now,
        )

    audit = AuditRecord(
        action=transition.audit_action,
        resource=RESOURCE,
        resource_id=str(request.id),
        old_values={"status": request.status.value},
        new_values={"status": new_status.value, "comments": comments},
        actor_id=actor.user_id,
        occurred_at=now,
    )

    notifications: tuple[Notification, ...] = ()
    if action != "cancel" and notify_user_id is not None:
        suffix = f" Comments: {comments}" if comments else ""
        notifications = (
            Notification(
                user_id=notify_user_id,
                title=f"Leave Request {new_status.value.capitalize()}",
                message=f"Your {leave_type_name} request has been {new_status.value}.{suffix}",
                type=(
                    NotificationType.SUCCESS
                    if new_status == LeaveRequestStatus.APPROVED
                    else NotificationType.WARNING
                ),
            ),
        )

    return WorkflowStep(
        entity=updated,
        action=action,
        from_state=transition.from_state,
        to_state=transition.to_state,
        audit=(audit,),
        notifications=notifications,
    )
