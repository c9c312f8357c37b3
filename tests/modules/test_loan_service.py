"""
Tests for LoanService.

Covers:
- Loan creation with computed terms and cooperative default rates
- Repayment schedules and installment application
- Term locking after the first payment
- Cancellation cascading to repayment deductions
- Cooperative administration
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_engines.amortization import InterestMethod
from payroll_kernel.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    StateConflictError,
    UnauthorizedActorError,
    ValidationError,
)
from payroll_modules.adjustments.models import DeductionStatus
from payroll_modules.loans.models import LoanStatus, LoanType

START = date(2024, 1, 31)


@pytest.fixture
def loan(context, world):
    return context.loans.create_loan(
        world.field_officer.id, LoanType.PERSONAL_LOAN, Decimal("120000"), 12, START,
        world.payroll_admin, interest_rate=Decimal("10"),
    )


class TestCreateLoan:

    def test_flat_terms_computed(self, loan, audit_sink):
        assert loan.status == LoanStatus.ACTIVE
        assert loan.monthly_principal == Decimal("10000.00")
        assert loan.monthly_interest == Decimal("1000.00")
        assert loan.monthly_total == Decimal("11000.00")
        assert loan.total_interest == Decimal("12000.00")
        assert loan.remaining_balance == Decimal("120000.00")
        assert loan.end_date == date(2024, 12, 31)
        assert audit_sink.actions() == ["loan_created"]

    def test_reducing_method(self, context, world):
        loan = context.loans.create_loan(
            world.clerk.id, "emergency_loan", Decimal("100000"), 12, START,
            world.account_admin, interest_rate=Decimal("12"), method="reducing",
        )
        assert loan.method == InterestMethod.REDUCING
        assert loan.monthly_total == Decimal("8884.88")

    def test_unknown_staff(self, context, world):
        with pytest.raises(EntityNotFoundError):
            context.loans.create_loan(
                uuid4(), "salary_advance", Decimal("1000"), 1, START, world.payroll_admin,
            )

    def test_staff_cannot_manage_loans(self, context, world):
        with pytest.raises(UnauthorizedActorError):
            context.loans.create_loan(
                world.field_officer.id, "salary_advance", Decimal("1000"), 1, START,
                world.staff_actor,
            )

    def test_cooperative_default_rate_applies(self, context, world):
        cooperative = context.loans.create_cooperative(
            "Judiciary Staff Cooperative", world.payroll_admin, interest_rate_default=Decimal("5"),
        )
        loan = context.loans.create_loan(
            world.clerk.id, "cooperative_loan", Decimal("24000"), 12, START,
            world.payroll_admin, cooperative_id=cooperative.id,
        )
        assert loan.interest_rate == Decimal("5")
        assert loan.total_interest == Decimal("1200.00")

    def test_explicit_rate_overrides_cooperative(self, context, world):
        cooperative = context.loans.create_cooperative(
            "Registry Thrift", world.payroll_admin, interest_rate_default=Decimal("5"),
        )
        loan = context.loans.create_loan(
            world.clerk.id, "cooperative_loan", Decimal("24000"), 12, START,
            world.payroll_admin, interest_rate=Decimal("0"), cooperative_id=cooperative.id,
        )
        assert loan.total_interest == Decimal("0.00")

    def test_inactive_cooperative_rejected(self, context, world):
        cooperative = context.loans.create_cooperative("Old Thrift", world.payroll_admin)
        context.loans.deactivate_cooperative(cooperative.id, world.payroll_admin)
        with pytest.raises(ValidationError):
            context.loans.create_loan(
                world.clerk.id, "cooperative_loan", Decimal("1000"), 2, START,
                world.payroll_admin, cooperative_id=cooperative.id,
            )


class TestSchedule:

    def test_rows_sum_to_principal(self, context, loan):
        rows = context.loans.get_repayment_schedule(loan.id)
        assert len(rows) == 12
        assert sum(r.principal for r in rows) == loan.principal
        assert rows[0].due_date == START
        assert not any(r.is_paid for r in rows)

    def test_paid_rows_flagged(self, context, world, loan):
        context.loans.apply_installment(loan.id, world.payroll_admin)
        rows = context.loans.get_repayment_schedule(loan.id)
        assert [r.is_paid for r in rows[:2]] == [True, False]

    def test_batch_facade_matches(self, context, loan):
        assert context.batch.get_loan_repayment_schedule(loan.id) == (
            context.loans.get_repayment_schedule(loan.id)
        )


class TestApplyInstallment:

    def test_balance_drops_by_principal_component(self, context, world, loan):
        updated = context.loans.apply_installment(loan.id, world.payroll_admin)
        assert updated.installments_paid == 1
        assert updated.remaining_balance == Decimal("110000.00")
        assert updated.status == LoanStatus.ACTIVE

    def test_last_installment_pays_off(self, context, world, audit_sink):
        loan = context.loans.create_loan(
            world.clerk.id, "salary_advance", Decimal("10000"), 3, START,
            world.payroll_admin, interest_rate=Decimal("0"),
        )
        for _ in range(3):
            loan = context.loans.apply_installment(loan.id, world.payroll_admin)

        assert loan.status == LoanStatus.PAID_OFF
        assert loan.remaining_balance == Decimal("0.00")
        assert "loan_paid_off" in audit_sink.actions()

        with pytest.raises(StateConflictError):
            context.loans.apply_installment(loan.id, world.payroll_admin)

    def test_stale_write_rejected(self, context, world, loan, store, monkeypatch):
        monkeypatch.setattr(store, "compare_and_set_loan", lambda *a, **k: False)
        with pytest.raises(ConcurrentModificationError):
            context.loans.apply_installment(loan.id, world.payroll_admin)


class TestUpdateLoan:

    def test_terms_recomputed_before_payment(self, context, world, loan):
        updated = context.loans.update_loan(
            loan.id, world.payroll_admin, number_of_installments=6, notes="Shortened",
        )
        assert updated.monthly_principal == Decimal("20000.00")
        assert updated.total_interest == Decimal("6000.00")
        assert updated.end_date == date(2024, 6, 30)
        assert updated.notes == "Shortened"

    def test_terms_locked_after_payment(self, context, world, loan):
        context.loans.apply_installment(loan.id, world.payroll_admin)
        with pytest.raises(StateConflictError):
            context.loans.update_loan(loan.id, world.payroll_admin, principal=Decimal("90000"))

    def test_notes_still_editable_after_payment(self, context, world, loan):
        context.loans.apply_installment(loan.id, world.payroll_admin)
        updated = context.loans.update_loan(loan.id, world.payroll_admin, notes="Deferred")
        assert updated.notes == "Deferred"
        assert updated.installments_paid == 1


class TestCancelLoan:

    def test_cancels_linked_repayment_deductions(self, context, world, loan):
        repayment = context.adjustments.add_individual_deduction(
            world.field_officer.id, "Loan Repayment", loan.monthly_total, "2024-01",
            world.payroll_admin, loan_id=loan.id, start_period="2024-01",
        )
        unrelated = context.adjustments.add_individual_deduction(
            world.field_officer.id, "Fine", Decimal("500"), "2024-01", world.payroll_admin,
        )

        cancelled = context.loans.cancel_loan(loan.id, world.account_admin, reason="Resigned")

        assert cancelled.status == LoanStatus.CANCELLED
        assert context.adjustments.get_deduction(repayment.id).status == DeductionStatus.CANCELLED
        assert context.adjustments.get_deduction(unrelated.id).status == DeductionStatus.ACTIVE
        assert context.loans.get_staff_loans(world.field_officer.id, LoanStatus.ACTIVE) == []

    def test_each_cancelled_deduction_is_audited(self, context, world, loan, audit_sink):
        repayment = context.adjustments.add_individual_deduction(
            world.field_officer.id, "Loan Repayment", loan.monthly_total, "2024-01",
            world.payroll_admin, loan_id=loan.id, start_period="2024-01",
        )

        context.loans.cancel_loan(loan.id, world.account_admin, reason="Resigned")

        assert audit_sink.actions()[-2:] == ["individual_deduction_cancelled", "loan_cancelled"]
        record = audit_sink.records[-2]
        assert record.resource == "staff_individual_deductions"
        assert record.resource_id == str(repayment.id)
        assert record.old_values["status"] == "active"
        assert record.new_values["status"] == "cancelled"
        assert record.new_values["reason"] == "Resigned"
        assert record.actor_id == world.account_admin.user_id

    def test_cannot_cancel_twice(self, context, world, loan):
        context.loans.cancel_loan(loan.id, world.account_admin)
        with pytest.raises(StateConflictError):
            context.loans.cancel_loan(loan.id, world.account_admin)


class TestCooperatives:

    def test_duplicate_name_rejected(self, context, world):
        context.loans.create_cooperative("Bench Thrift", world.payroll_admin)
        with pytest.raises(ValidationError):
            context.loans.create_cooperative(" Bench Thrift ", world.payroll_admin)

    def test_update_and_deactivate(self, context, world):
        cooperative = context.loans.create_cooperative("Bench Thrift", world.payroll_admin)
        updated = context.loans.update_cooperative(
            cooperative.id, world.payroll_admin, interest_rate_default="7.5", email="bt@example.test",
        )
        assert updated.interest_rate_default == Decimal("7.5")

        context.loans.deactivate_cooperative(cooperative.id, world.payroll_admin)
        assert context.loans.list_cooperatives() == []
        assert len(context.loans.list_cooperatives(active_only=False)) == 1

    def test_update_rejects_unknown_fields(self, context, world):
        cooperative = context.loans.create_cooperative("Bench Thrift", world.payroll_admin)
        with pytest.raises(ValidationError):
            context.loans.update_cooperative(cooperative.id, world.payroll_admin, is_active=False)
