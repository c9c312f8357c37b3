"""
Tests for LeaveService.

Covers:
- Balance checks for paid and unpaid types
- Submission, approval with atomic consumption, rejection and cancellation
- Balance initialization and idempotent monthly accrual
- Leave type administration
- Approved leave overlapping a payroll period
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from payroll_kernel.domain.workflow import Notification
from payroll_kernel.exceptions import (
    ConcurrentModificationError,
    InsufficientBalanceError,
    StateConflictError,
    UnauthorizedActorError,
    ValidationError,
)
from payroll_modules.context import SessionContext
from payroll_modules.leave.config import LeaveConfig
from payroll_modules.leave.models import LeaveBalance, LeaveRequestStatus
from payroll_modules.persistence.memory import InMemoryPersistence
from tests.conftest import add_staff

MID_YEAR = date(2024, 6, 1)

# Mon 5 Feb .. Fri 9 Feb 2024
WEEK_START = date(2024, 2, 5)
WEEK_END = date(2024, 2, 9)


def _annual_balance(context, world):
    [balance] = [
        b for b in context.leave.get_staff_leave_balances(world.field_officer.id, 2024)
        if b.leave_type_id == world.annual_leave.id
    ]
    return balance


@pytest.fixture
def balances(context, world):
    """Mid-year balances: 15 annual days and 6 sick days for the field officer."""
    return context.leave.initialize_staff_leave_balances(world.field_officer.id, as_of=MID_YEAR)


class TestInitializeBalances:

    def test_prorated_rows_for_every_active_type(self, context, world, balances):
        by_type = {b.leave_type_id: b for b in balances}
        assert len(balances) == 3
        assert by_type[world.annual_leave.id].accrued_days == Decimal("15.0")
        assert by_type[world.sick_leave.id].accrued_days == Decimal("6")
        assert by_type[world.unpaid_leave.id].accrued_days == Decimal("0")

    def test_existing_rows_left_alone(self, context, world, balances):
        again = context.leave.initialize_staff_leave_balances(world.field_officer.id, as_of=MID_YEAR)
        assert again == []
        assert _annual_balance(context, world).accrued_days == Decimal("15.0")

    def test_without_proration(self, store, world, clock):
        context = SessionContext(store, clock=clock, leave_config=LeaveConfig(prorate_on_initialize=False))
        created = context.leave.initialize_staff_leave_balances(world.clerk.id, as_of=MID_YEAR)
        assert all(b.accrued_days == 0 for b in created)

    def test_each_created_row_is_audited(self, context, world, audit_sink):
        created = context.leave.initialize_staff_leave_balances(
            world.clerk.id, as_of=MID_YEAR, actor=world.payroll_admin,
        )

        records = [r for r in audit_sink.records if r.action == "leave_balance_initialized"]
        assert {r.resource_id for r in records} == {str(b.id) for b in created}
        assert all(r.resource == "staff_leave_balances" for r in records)
        assert all(r.old_values is None for r in records)
        assert all(r.actor_id == world.payroll_admin.user_id for r in records)
        [annual] = [r for r in records if r.new_values["leave_type"] == "AL"]
        assert Decimal(annual.new_values["accrued_days"]) == Decimal("15")

    def test_logs_created_count(self, context, world, captured_logs):
        context.leave.initialize_staff_leave_balances(world.field_officer.id, as_of=MID_YEAR)

        [record] = [r for r in captured_logs() if r["message"] == "leave_balances_initialized"]
        assert record["balances_created"] == 3
        assert record["year"] == 2024


class TestCheckBalance:

    def test_returns_remaining(self, context, world, balances):
        remaining = context.leave.check_leave_balance(
            world.field_officer.id, world.annual_leave.id, 5, 2024,
        )
        assert remaining == Decimal("15.0")

    def test_unpaid_is_always_sufficient(self, context, world):
        assert context.leave.check_leave_balance(
            world.field_officer.id, world.unpaid_leave.id, 300, 2024,
        ) is None

    def test_paid_without_row(self, context, world):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            context.leave.check_leave_balance(world.clerk.id, world.annual_leave.id, 1, 2024)
        assert exc_info.value.available is None

    def test_too_few_days(self, context, world, balances):
        with pytest.raises(InsufficientBalanceError):
            context.leave.check_leave_balance(world.field_officer.id, world.sick_leave.id, 7, 2024)

    def test_unknown_type(self, context, world):
        with pytest.raises(ValidationError):
            context.leave.check_leave_balance(world.field_officer.id, uuid4(), 1, 2024)


class TestSubmit:

    def test_pending_request_notifies_admins(self, context, world, balances, notification_sink, audit_sink):
        request = context.leave.submit_leave_request(
            world.field_officer.id, world.annual_leave.id, WEEK_START, WEEK_END,
            world.staff_actor, reason="Family visit",
        )

        assert request.status == LeaveRequestStatus.PENDING
        assert request.total_days == 5
        assert request.requested_by == world.staff_actor.user_id
        assert audit_sink.actions()[len(balances):] == ["leave_request_submitted"]
        assert {n.user_id for n in notification_sink.notifications} == {
            world.super_admin.user_id,
            world.account_admin.user_id,
            world.payroll_admin.user_id,
        }
        assert all(n.title == "New Leave Request" for n in notification_sink.notifications)
        # Not consumed until approval
        assert _annual_balance(context, world).used_days == 0

    def test_staff_cannot_submit_for_someone_else(self, context, world):
        with pytest.raises(UnauthorizedActorError):
            context.leave.submit_leave_request(
                world.clerk.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.staff_actor,
            )

    def test_admin_may_submit_on_behalf(self, context, world):
        request = context.leave.submit_leave_request(
            world.clerk.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.payroll_admin,
        )
        assert request.staff_id == world.clerk.id

    def test_weekend_only_rejected(self, context, world):
        with pytest.raises(ValidationError):
            context.leave.submit_leave_request(
                world.field_officer.id, world.unpaid_leave.id,
                date(2024, 2, 10), date(2024, 2, 11), world.staff_actor,
            )

    def test_insufficient_balance_rejected_at_submit(self, context, world, balances, store):
        with pytest.raises(InsufficientBalanceError):
            context.leave.submit_leave_request(
                world.field_officer.id, world.sick_leave.id,
                date(2024, 2, 5), date(2024, 2, 16), world.staff_actor,
            )
        assert store.list_leave_requests(LeaveRequestStatus.PENDING) == []


class TestDecide:

    def test_approve_consumes_days_and_notifies_staff(self, context, world, balances, notification_sink):
        request = context.leave.submit_leave_request(
            world.field_officer.id, world.annual_leave.id, WEEK_START, WEEK_END, world.staff_actor,
        )
        notification_sink.notifications.clear()

        approved = context.leave.update_leave_request_status(
            request.id, "approved", world.account_admin, comments="Enjoy",
        )

        assert approved.status == LeaveRequestStatus.APPROVED
        assert approved.approved_by == world.account_admin.user_id
        assert approved.approval_comments == "Enjoy"
        assert _annual_balance(context, world).used_days == Decimal("5")
        [note] = notification_sink.notifications
        assert isinstance(note, Notification)
        assert note.user_id == world.staff_actor.user_id

    def test_reject_leaves_balance_untouched(self, context, world, balances):
        request = context.leave.submit_leave_request(
            world.field_officer.id, world.annual_leave.id, WEEK_START, WEEK_END, world.staff_actor,
        )
        rejected = context.leave.update_leave_request_status(
            request.id, LeaveRequestStatus.REJECTED, world.account_admin,
        )
        assert rejected.status == LeaveRequestStatus.REJECTED
        assert _annual_balance(context, world).used_days == 0

    def test_approve_unpaid_needs_no_balance(self, context, world):
        request = context.leave.submit_leave_request(
            world.clerk.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.payroll_admin,
        )
        approved = context.leave.update_leave_request_status(request.id, "approved", world.super_admin)
        assert approved.status == LeaveRequestStatus.APPROVED

    def test_overlapping_approvals_cannot_overdraw(self, context, world, balances, store):
        # Two 5-day sick requests pass the submit check against a 6-day balance
        first = context.leave.submit_leave_request(
            world.field_officer.id, world.sick_leave.id, WEEK_START, WEEK_END, world.staff_actor,
        )
        second = context.leave.submit_leave_request(
            world.field_officer.id, world.sick_leave.id,
            date(2024, 3, 4), date(2024, 3, 8), world.staff_actor,
        )
        context.leave.update_leave_request_status(first.id, "approved", world.account_admin)

        with pytest.raises(InsufficientBalanceError):
            context.leave.update_leave_request_status(second.id, "approved", world.account_admin)

        assert context.leave.get_leave_request(second.id).status == LeaveRequestStatus.PENDING
        sick = store.get_leave_balance(world.field_officer.id, world.sick_leave.id, 2024)
        assert sick.used_days == Decimal("5")

    def test_staff_cannot_decide(self, context, world):
        request = context.leave.submit_leave_request(
            world.field_officer.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.staff_actor,
        )
        with pytest.raises(UnauthorizedActorError):
            context.leave.update_leave_request_status(request.id, "approved", world.staff_actor)

    def test_only_approve_or_reject(self, context, world):
        request = context.leave.submit_leave_request(
            world.field_officer.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.staff_actor,
        )
        with pytest.raises(ValidationError):
            context.leave.update_leave_request_status(request.id, "cancelled", world.account_admin)

    def test_lost_compare_and_set_rolls_back_consumption(self, context, world, balances, store, monkeypatch):
        request = context.leave.submit_leave_request(
            world.field_officer.id, world.annual_leave.id, WEEK_START, WEEK_END, world.staff_actor,
        )
        monkeypatch.setattr(store, "compare_and_set_leave_request", lambda *a, **k: False)

        with pytest.raises(ConcurrentModificationError):
            context.leave.update_leave_request_status(request.id, "approved", world.account_admin)

        monkeypatch.undo()
        assert _annual_balance(context, world).used_days == 0


class TestCancel:

    def test_staff_cancels_own_pending_request(self, context, world):
        request = context.leave.submit_leave_request(
            world.field_officer.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.staff_actor,
        )
        cancelled = context.leave.cancel_leave_request(request.id, world.staff_actor)
        assert cancelled.status == LeaveRequestStatus.CANCELLED
        assert context.leave.get_pending_leave_requests() == []

    def test_staff_cannot_cancel_others(self, context, world, store):
        request = context.leave.submit_leave_request(
            world.clerk.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.payroll_admin,
        )
        with pytest.raises(UnauthorizedActorError):
            context.leave.cancel_leave_request(request.id, world.staff_actor)

    def test_decided_request_cannot_be_cancelled(self, context, world):
        request = context.leave.submit_leave_request(
            world.field_officer.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.staff_actor,
        )
        context.leave.update_leave_request_status(request.id, "rejected", world.account_admin)

        with pytest.raises(StateConflictError, match="cannot be cancelled"):
            context.leave.cancel_leave_request(request.id, world.staff_actor)


class TestAccrual:

    def test_adds_one_month_per_accruing_type(self, context, world):
        report = context.leave.accrue_monthly_leave("2024-01")

        # Two active staff x two accruing types; unpaid leave does not accrue
        assert report.applied == 4
        assert report.balances_created == 4
        assert report.skipped == 0
        annual = _annual_balance(context, world)
        assert annual.accrued_days == Decimal("2.5")

    def test_rerun_for_same_period_adds_nothing(self, context, world):
        context.leave.accrue_monthly_leave("2024-01")
        again = context.leave.accrue_monthly_leave("2024-01")

        assert again.applied == 0
        assert again.skipped == 4
        assert _annual_balance(context, world).accrued_days == Decimal("2.5")

    def test_next_month_accrues_again(self, context, world):
        context.leave.accrue_monthly_leave("2024-01")
        context.leave.accrue_monthly_leave("2024-02")
        assert _annual_balance(context, world).accrued_days == Decimal("5.0")

    def test_defaults_to_current_period(self, context, world, captured_logs):
        report = context.leave.accrue_monthly_leave()
        assert report.period == "2024-01"
        assert any(r["message"] == "leave_accrual_completed" for r in captured_logs())

    def test_inactive_staff_do_not_accrue(self, context, world):
        from payroll_modules.staff.models import StaffStatus

        add_staff(context.persistence, "JSC/1999/001", 15, 3, status=StaffStatus.RETIRED)
        report = context.leave.accrue_monthly_leave("2024-01")
        assert report.applied == 4

    def test_each_credit_is_audited(self, context, world, audit_sink):
        context.leave.accrue_monthly_leave("2024-01")
        context.leave.accrue_monthly_leave("2024-02")

        credits = [r for r in audit_sink.records if r.action == "leave_accrued"]
        assert len(credits) == 8
        annual = _annual_balance(context, world)
        february = [
            r for r in credits
            if r.resource_id == str(annual.id) and r.new_values["period"] == "2024-02"
        ]
        [record] = february
        assert record.resource == "staff_leave_balances"
        assert Decimal(record.old_values["accrued_days"]) == Decimal("2.5")
        assert Decimal(record.new_values["accrued_days"]) == Decimal("5")
        assert record.actor_id is None

    def test_repeated_period_audits_nothing(self, context, world, audit_sink):
        context.leave.accrue_monthly_leave("2024-01")
        emitted = len(audit_sink.records)

        context.leave.accrue_monthly_leave("2024-01")

        assert len(audit_sink.records) == emitted


class TestLeaveTypes:

    def test_create_normalizes_code_and_audits(self, context, world, audit_sink):
        maternity = context.leave.create_leave_type(
            "Maternity Leave", " ml ", world.payroll_admin, max_days_per_year=84,
        )
        assert maternity.code == "ML"
        assert "leave_type_created" in audit_sink.actions()
        assert maternity in context.leave.list_leave_types()

    def test_duplicate_code_rejected(self, context, world):
        with pytest.raises(ValidationError):
            context.leave.create_leave_type("Another Annual", "AL", world.payroll_admin)

    def test_account_admin_cannot_manage_types(self, context, world):
        with pytest.raises(UnauthorizedActorError):
            context.leave.create_leave_type("Study Leave", "STL", world.account_admin)

    def test_update_and_deactivate(self, context, world):
        updated = context.leave.update_leave_type(
            world.sick_leave.id, world.payroll_admin, accrual_rate="1.5", is_active=False,
        )
        assert updated.accrual_rate == Decimal("1.5")
        assert world.sick_leave.id not in {t.id for t in context.leave.list_leave_types()}

    def test_update_rejects_unknown_fields(self, context, world):
        with pytest.raises(ValidationError):
            context.leave.update_leave_type(world.sick_leave.id, world.payroll_admin, colour="red")

    def test_update_normalizes_code(self, context, world, audit_sink):
        updated = context.leave.update_leave_type(world.sick_leave.id, world.payroll_admin, code=" sk ")

        assert updated.code == "SK"
        assert context.leave.get_leave_type(world.sick_leave.id).code == "SK"
        assert audit_sink.records[-1].new_values["code"] == "SK"

    def test_update_rejects_duplicate_code(self, context, world, audit_sink):
        with pytest.raises(ValidationError):
            context.leave.update_leave_type(world.sick_leave.id, world.payroll_admin, code="al")

        assert context.leave.get_leave_type(world.sick_leave.id).code == "SL"
        assert "leave_type_updated" not in audit_sink.actions()

    def test_update_keeping_own_code(self, context, world):
        updated = context.leave.update_leave_type(
            world.sick_leave.id, world.payroll_admin, code="sl", name=" Sick ",
        )
        assert updated.code == "SL"
        assert updated.name == "Sick"


class TestPayrollPeriodLeave:

    def test_only_approved_days_inside_the_month(self, context, world, balances):
        # Wed 28 Feb .. Tue 5 Mar: 2 working days in February
        spanning = context.leave.submit_leave_request(
            world.field_officer.id, world.annual_leave.id,
            date(2024, 2, 28), date(2024, 3, 5), world.staff_actor,
        )
        context.leave.update_leave_request_status(spanning.id, "approved", world.account_admin)
        context.leave.submit_leave_request(
            world.clerk.id, world.unpaid_leave.id, WEEK_START, WEEK_END, world.payroll_admin,
        )

        [entry] = context.leave.get_leave_requests_for_payroll_period("2024-02")
        assert entry.request.id == spanning.id
        assert entry.days_in_period == 2
        assert entry.is_paid is True
        assert entry.leave_type_name == "Annual Leave"

        [march] = context.leave.get_leave_requests_for_payroll_period("2024-03")
        assert march.days_in_period == 3
        assert context.leave.get_leave_requests_for_payroll_period("2024-04") == []


class TestBalanceInvariant:

    @given(
        accrued=st.integers(min_value=0, max_value=30),
        carried=st.integers(min_value=0, max_value=10),
        requests=st.lists(st.integers(min_value=1, max_value=10), max_size=12),
    )
    def test_consumption_never_overdraws(self, accrued, carried, requests):
        store = InMemoryPersistence()
        staff_id, leave_type_id = uuid4(), uuid4()
        store.add_leave_balance(LeaveBalance(
            id=uuid4(), staff_id=staff_id, leave_type_id=leave_type_id, year=2024,
            accrued_days=Decimal(accrued), carried_forward=Decimal(carried),
        ))

        granted = [
            days for days in requests
            if store.try_consume_leave_days(staff_id, leave_type_id, 2024, Decimal(days))
        ]

        balance = store.get_leave_balance(staff_id, leave_type_id, 2024)
        assert balance.used_days == sum(granted)
        assert balance.remaining_days == accrued + carried - sum(granted)
        assert balance.remaining_days >= 0
