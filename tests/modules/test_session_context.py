"""
Tests for SessionContext, change subscriptions and the batch facade.
"""

from decimal import Decimal

import pytest

from payroll_engines.amortization import InterestMethod
from payroll_kernel.domain.workflow import AuditRecord
from payroll_kernel.exceptions import UnauthorizedActorError
from payroll_modules.context import ChangeSubscriptions, SessionContext


def _record(resource="payroll_runs", action="payroll_created") -> AuditRecord:
    return AuditRecord(action=action, resource=resource, resource_id="1", old_values=None, new_values={})


class TestChangeSubscriptions:

    def test_resource_and_wildcard_delivery(self):
        subscriptions = ChangeSubscriptions()
        runs, everything, loans = [], [], []
        subscriptions.subscribe("payroll_runs", runs.append)
        subscriptions.subscribe("*", everything.append)
        subscriptions.subscribe("loans", loans.append)

        delivered = subscriptions.publish(_record())

        assert delivered == 2
        assert len(runs) == 1
        assert len(everything) == 1
        assert loans == []

    def test_unsubscriber(self):
        subscriptions = ChangeSubscriptions()
        seen = []
        unsubscribe = subscriptions.subscribe("payroll_runs", seen.append)
        unsubscribe()
        subscriptions.publish(_record())
        assert seen == []
        assert subscriptions.subscriber_count() == 0

    def test_failing_callback_does_not_stop_others(self, captured_logs):
        subscriptions = ChangeSubscriptions()
        seen = []

        def broken(record):
            raise KeyError("ui gone")

        subscriptions.subscribe("payroll_runs", broken)
        subscriptions.subscribe("payroll_runs", seen.append)

        assert subscriptions.publish(_record()) == 1
        assert len(seen) == 1
        assert any(r["message"] == "change_subscription_failed" for r in captured_logs())

    def test_closed_rejects_new_subscribers(self):
        subscriptions = ChangeSubscriptions()
        subscriptions.clear()
        with pytest.raises(RuntimeError):
            subscriptions.subscribe("loans", print)


class TestSessionContext:

    def test_services_share_one_session(self, context, world):
        seen = []
        context.subscriptions.subscribe("payroll_runs", seen.append)

        context.payroll.create_run("2024-01", world.payroll_admin)

        assert [r.action for r in seen] == ["payroll_created"]

    def test_leave_changes_published(self, context, world):
        seen = []
        context.subscriptions.subscribe("*", seen.append)
        context.leave.submit_leave_request(
            world.field_officer.id, world.unpaid_leave.id,
            context.clock.today(), context.clock.today(), world.staff_actor,
        )
        assert [r.action for r in seen] == ["leave_request_submitted"]

    def test_close_is_idempotent_and_drops_subscribers(self, store):
        with SessionContext(store) as context:
            context.subscriptions.subscribe("*", print)
        assert context.closed
        assert context.subscriptions.subscriber_count() == 0
        context.close()
        assert context.closed

    def test_defaults_to_logging_sinks(self, store, world, captured_logs):
        context = SessionContext(store)
        context.loans.create_cooperative("Bench Thrift", world.payroll_admin)
        assert any(r["message"] == "audit_record" for r in captured_logs())


class TestBatchOperations:

    def test_accrual_job(self, context, world, captured_logs):
        report = context.batch.accrue_monthly_leave("2024-01", actor=world.payroll_admin)

        assert report.applied == 4
        messages = [r["message"] for r in captured_logs()]
        assert "batch_job_started" in messages
        assert "batch_job_completed" in messages

    def test_system_triggered_accrual_needs_no_actor(self, context, world):
        assert context.batch.accrue_monthly_leave("2024-01").applied == 4
        assert context.batch.accrue_monthly_leave("2024-01").applied == 0

    def test_accrual_requires_run_batch(self, context, world):
        with pytest.raises(UnauthorizedActorError):
            context.batch.accrue_monthly_leave("2024-01", actor=world.account_admin)

    def test_initialize_balances(self, context, world):
        created = context.batch.initialize_staff_leave_balances(world.clerk.id)
        assert len(created) == 3

    def test_initialize_balances_logs_count(self, context, world, captured_logs):
        context.batch.initialize_staff_leave_balances(world.clerk.id, actor=world.payroll_admin)

        [completed] = [r for r in captured_logs() if r["message"] == "batch_job_completed"]
        assert completed["balances_created"] == 3
        [initialized] = [
            r for r in captured_logs() if r["message"] == "leave_balances_initialized"
        ]
        assert initialized["balances_created"] == 3

    def test_loan_schedule_accepts_strings(self, context):
        summary = context.batch.calculate_loan_schedule("120000", "10", 12, "flat")
        assert summary.monthly_total == Decimal("11000.00")

        reducing = context.batch.calculate_loan_schedule(
            Decimal("100000"), Decimal("12"), 12, InterestMethod.REDUCING,
        )
        assert reducing.monthly_total == Decimal("8884.88")
