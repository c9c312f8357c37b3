"""
Tests for the payroll run workflow planner.

The planner is pure: these tests exercise it without any persistence.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.domain.roles import Actor, Role
from payroll_kernel.domain.workflow import Notification, NotifyRoles
from payroll_kernel.exceptions import InvalidTransitionError, UnauthorizedActorError
from payroll_modules.payroll.models import PayrollRun, PayrollRunStatus
from payroll_modules.payroll.workflows import (
    PAYROLL_RUN_WORKFLOW,
    plan_create,
    plan_transition,
)

NOW = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)

SUPER = Actor(uuid4(), Role.SUPER_ADMIN)
ACCOUNT = Actor(uuid4(), Role.ACCOUNT_ADMIN)
PAYROLL = Actor(uuid4(), Role.PAYROLL_ADMIN)
STAFF = Actor(uuid4(), Role.STAFF)


def _run(status=PayrollRunStatus.DRAFT, version=1) -> PayrollRun:
    return PayrollRun(
        id=uuid4(), period="2024-01", status=status, created_by=PAYROLL.user_id, version=version,
    )


class TestWorkflowDefinition:

    def test_states_and_actions(self):
        assert PAYROLL_RUN_WORKFLOW.initial_state == "draft"
        assert PAYROLL_RUN_WORKFLOW.actions_from("pending_review") == ("approve", "reject")
        assert PAYROLL_RUN_WORKFLOW.actions_from("processed") == ("reopen",)


class TestPlanCreate:

    def test_create_sets_creator_and_audit(self):
        step = plan_create(_run(), PAYROLL, NOW)

        assert step.entity.status == PayrollRunStatus.DRAFT
        assert step.entity.created_by == PAYROLL.user_id
        assert step.audit[0].action == "payroll_created"
        assert step.audit[0].old_values is None

    def test_staff_cannot_create(self):
        with pytest.raises(UnauthorizedActorError):
            plan_create(_run(), STAFF, NOW)


class TestPlanTransition:

    def test_submit_notifies_approver_roles(self):
        step = plan_transition(_run(), "submit", PAYROLL, NOW)

        assert step.entity.status == PayrollRunStatus.PENDING_REVIEW
        assert step.entity.version == 2
        assert step.audit[0].action == "payroll_submitted"
        [intent] = step.notifications
        assert isinstance(intent, NotifyRoles)
        assert set(intent.roles) == {"super_admin", "account_admin"}

    def test_approve_records_approver_and_notifies_creator(self):
        run = _run(PayrollRunStatus.PENDING_REVIEW, version=2)
        step = plan_transition(run, "approve", ACCOUNT, NOW, comments="Looks right")

        assert step.entity.approved_by == ACCOUNT.user_id
        [note] = step.notifications
        assert isinstance(note, Notification)
        assert note.user_id == PAYROLL.user_id
        assert "Looks right" in note.message
        assert step.audit[0].new_values["comments"] == "Looks right"

    def test_reject_returns_to_draft(self):
        run = _run(PayrollRunStatus.PENDING_REVIEW, version=2)
        step = plan_transition(run, "reject", ACCOUNT, NOW)

        assert step.entity.status == PayrollRunStatus.DRAFT
        assert step.entity.approved_by is None

    def test_process_carries_totals(self):
        run = _run(PayrollRunStatus.APPROVED, version=3)
        step = plan_transition(
            run, "process", SUPER, NOW,
            changes={"staff_count": 2, "net_amount": Decimal("100")},
        )

        assert step.entity.status == PayrollRunStatus.PROCESSED
        assert step.entity.processed_at == NOW
        assert step.entity.staff_count == 2
        assert step.entity.is_locked

    def test_reopen_records_reason(self):
        run = _run(PayrollRunStatus.PROCESSED, version=4)
        step = plan_transition(run, "reopen", SUPER, NOW, comments="Wrong step for two staff")

        assert step.entity.status == PayrollRunStatus.DRAFT
        assert step.entity.processed_at is None
        assert step.audit[0].new_values["reason"] == "Wrong step for two staff"

    def test_wrong_state_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            plan_transition(_run(), "approve", ACCOUNT, NOW)
        assert exc_info.value.current_state == "draft"

    def test_unknown_action_rejected(self):
        with pytest.raises(InvalidTransitionError):
            plan_transition(_run(), "archive", SUPER, NOW)

    @pytest.mark.parametrize(
        "actor,action,status",
        [
            (STAFF, "submit", PayrollRunStatus.DRAFT),
            (PAYROLL, "approve", PayrollRunStatus.PENDING_REVIEW),
            (ACCOUNT, "process", PayrollRunStatus.APPROVED),
            (PAYROLL, "reopen", PayrollRunStatus.PROCESSED),
        ],
    )
    def test_capabilities_enforced(self, actor, action, status):
        with pytest.raises(UnauthorizedActorError):
            plan_transition(_run(status), action, actor, NOW)

    def test_capability_checked_before_state(self):
        with pytest.raises(UnauthorizedActorError):
            plan_transition(_run(PayrollRunStatus.PROCESSED), "submit", STAFF, NOW)

    def test_planner_does_not_mutate_input(self):
        run = _run()
        plan_transition(run, "submit", PAYROLL, NOW)
        assert run.status == PayrollRunStatus.DRAFT
        assert run.version == 1
