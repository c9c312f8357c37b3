"""
Loan Module Service (``payroll_modules.loans.service``).

Responsibility
--------------
Staff loans and cooperative organizations: creation with computed schedule
terms, repayment schedules, installment application, administrative updates
and cancellation.  Schedule arithmetic is delegated to
``payroll_engines.amortization`` and ``payroll_modules.loans.helpers``.

Invariants enforced
-------------------
* Installment application is a compare-and-set on
  (``status``, ``installments_paid``); a stale write raises
  ``ConcurrentModificationError``.
* Terms (principal, rate, installments, method) can only change while no
  installment has been paid.
* Loans are cancelled, never deleted; cancelling a loan cancels its active
  repayment deductions.
* Every mutation emits an audit record inside the unit of work.

Failure modes
-------------
* ``EntityNotFoundError`` -- unknown staff, loan or cooperative.
* ``StateConflictError`` -- loan not active, terms locked after payment.
* ``UnauthorizedActorError`` -- actor lacks ``MANAGE_LOANS``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from payroll_engines.amortization import (
    InterestMethod,
    LoanInstallment,
    LoanScheduleSummary,
    calculate_loan_schedule,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.roles import Actor, Capability, require_capability
from payroll_kernel.domain.values import ZERO, to_decimal
from payroll_kernel.domain.workflow import AuditRecord
from payroll_kernel.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    StateConflictError,
    ValidationError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.sinks import AuditSink, NotificationSink
from payroll_modules._service_helpers import Outbox, transaction
from payroll_modules.adjustments.models import DEDUCTIONS_RESOURCE, DeductionStatus
from payroll_modules.loans.helpers import (
    apply_installment,
    new_loan,
    repayment_schedule,
    reschedule,
)
from payroll_modules.loans.models import CooperativeOrganization, Loan, LoanStatus, LoanType
from payroll_modules.persistence.port import PayrollPersistence

logger = get_logger("modules.loans.service")

LOANS = "loans"
COOPERATIVES = "cooperative_organizations"


class LoanService:
    """
    Orchestrates loan and cooperative operations.

    Transaction boundary: every public mutating method owns one unit of work.
    ``apply_installment_in`` joins the caller's unit of work instead; the
    adjustment ledger uses it while recovering a loan-repayment deduction.
    """

    def __init__(
        self,
        persistence: PayrollPersistence,
        audit_sink: AuditSink,
        notification_sink: NotificationSink,
        clock: Clock | None = None,
    ):
        self._store = persistence
        self._audit_sink = audit_sink
        self._notification_sink = notification_sink
        self._clock = clock or SystemClock()

    def _transaction(self):
        return transaction(self._store, self._audit_sink, self._notification_sink)

    def _audit(self, outbox: Outbox, action: str, resource: str, entity_id: UUID,
               old: dict | None, new: dict | None, actor: Actor) -> None:
        outbox.audit(
            AuditRecord(
                action=action,
                resource=resource,
                resource_id=str(entity_id),
                old_values=old,
                new_values=new,
                actor_id=actor.user_id,
                occurred_at=self._clock.now(),
            )
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def calculate_loan_schedule(
        principal: Decimal,
        annual_rate: Decimal,
        installments: int,
        method: InterestMethod = InterestMethod.FLAT,
    ) -> LoanScheduleSummary:
        return calculate_loan_schedule(principal, annual_rate, installments, method)

    def get_loan(self, loan_id: UUID) -> Loan:
        loan = self._store.get_loan(loan_id)
        if loan is None:
            raise EntityNotFoundError("loan", loan_id)
        return loan

    def get_repayment_schedule(self, loan_id: UUID) -> tuple[LoanInstallment, ...]:
        """Full repayment schedule with already-paid rows flagged."""
        return repayment_schedule(self.get_loan(loan_id))

    def get_staff_loans(self, staff_id: UUID, status: LoanStatus | None = None) -> list[Loan]:
        return self._store.list_loans(staff_id=staff_id, status=status)

    def get_cooperative(self, cooperative_id: UUID) -> CooperativeOrganization:
        cooperative = self._store.get_cooperative(cooperative_id)
        if cooperative is None:
            raise EntityNotFoundError("cooperative_organization", cooperative_id)
        return cooperative

    def list_cooperatives(self, active_only: bool = True) -> list[CooperativeOrganization]:
        return self._store.list_cooperatives(active_only=active_only)

    # =========================================================================
    # Loans
    # =========================================================================

    def create_loan(
        self,
        staff_id: UUID,
        loan_type: LoanType | str,
        principal: Decimal,
        number_of_installments: int,
        start_date: date,
        actor: Actor,
        interest_rate: Decimal | None = None,
        method: InterestMethod | str = InterestMethod.FLAT,
        cooperative_id: UUID | None = None,
        notes: str | None = None,
    ) -> Loan:
        """
        Create an active loan with its schedule terms computed.

        A cooperative loan without an explicit rate takes the cooperative's
        default rate.
        """
        require_capability(actor, Capability.MANAGE_LOANS)
        if self._store.get_staff(staff_id) is None:
            raise EntityNotFoundError("staff", staff_id)

        rate = interest_rate
        if cooperative_id is not None:
            cooperative = self.get_cooperative(cooperative_id)
            if not cooperative.is_active:
                raise ValidationError(
                    f"Cooperative '{cooperative.name}' is inactive", field="cooperative_id",
                )
            if rate is None:
                rate = cooperative.interest_rate_default

        loan = new_loan(
            loan_id=uuid4(),
            staff_id=staff_id,
            loan_type=LoanType(loan_type),
            principal=principal,
            interest_rate=to_decimal(rate),
            number_of_installments=number_of_installments,
            start_date=start_date,
            method=InterestMethod(method),
            cooperative_id=cooperative_id,
            notes=notes,
            created_by=actor.user_id,
        )

        with LogContext.bind(actor_id=str(actor.user_id), staff_id=str(staff_id)):
            with self._transaction() as outbox:
                self._store.add_loan(loan)
                self._audit(outbox, "loan_created", LOANS, loan.id, None, loan.snapshot(), actor)
            logger.info(
                "loan_created",
                extra={
                    "loan_id": str(loan.id),
                    "loan_type": loan.loan_type.value,
                    "principal": str(loan.principal),
                    "monthly_total": str(loan.monthly_total),
                },
            )
        return loan

    def _compare_and_set(self, updated: Loan, previous: Loan) -> None:
        if not self._store.compare_and_set_loan(
            updated, previous.status, previous.installments_paid,
        ):
            current = self._store.get_loan(previous.id)
            actual = (
                None if current is None
                else f"{current.status.value}/{current.installments_paid}"
            )
            raise ConcurrentModificationError(
                "loan",
                previous.id,
                f"{previous.status.value}/{previous.installments_paid}",
                actual,
            )

    def apply_installment_in(self, outbox: Outbox, loan_id: UUID, actor: Actor) -> Loan:
        """Apply the next installment inside the caller's unit of work."""
        loan = self.get_loan(loan_id)
        updated = apply_installment(loan)
        self._compare_and_set(updated, loan)

        self._audit(
            outbox, "loan_payment_applied", LOANS, loan.id,
            loan.snapshot(), updated.snapshot(), actor,
        )
        if updated.status == LoanStatus.PAID_OFF:
            self._audit(
                outbox, "loan_paid_off", LOANS, loan.id,
                {"status": loan.status.value},
                {"status": updated.status.value},
                actor,
            )
            logger.info("loan_paid_off", extra={"loan_id": str(loan.id)})
        return updated

    def apply_installment(self, loan_id: UUID, actor: Actor) -> Loan:
        """Record one paid installment (compare-and-set on installments_paid)."""
        require_capability(actor, Capability.MANAGE_LOANS)
        with self._transaction() as outbox:
            updated = self.apply_installment_in(outbox, loan_id, actor)
        logger.info(
            "loan_installment_applied",
            extra={
                "loan_id": str(loan_id),
                "installments_paid": updated.installments_paid,
                "remaining_balance": str(updated.remaining_balance),
            },
        )
        return updated

    def update_loan(
        self,
        loan_id: UUID,
        actor: Actor,
        principal: Decimal | None = None,
        interest_rate: Decimal | None = None,
        number_of_installments: int | None = None,
        method: InterestMethod | str | None = None,
        notes: str | None = None,
    ) -> Loan:
        """Administrative edit of an active loan."""
        require_capability(actor, Capability.MANAGE_LOANS)
        terms_changed = any(
            v is not None for v in (principal, interest_rate, number_of_installments, method)
        )
        with self._transaction() as outbox:
            loan = self.get_loan(loan_id)
            if not loan.is_active:
                raise StateConflictError(
                    f"Cannot update loan {loan_id} in status '{loan.status.value}'",
                    entity_type="loan",
                    entity_id=loan_id,
                )
            updated = loan
            if terms_changed:
                if loan.installments_paid > 0:
                    raise StateConflictError(
                        f"Loan {loan_id} terms are fixed after the first installment",
                        entity_type="loan",
                        entity_id=loan_id,
                    )
                updated = reschedule(
                    loan, principal, interest_rate, number_of_installments, method,
                )
            if notes is not None:
                updated = replace(updated, notes=notes)

            self._compare_and_set(updated, loan)
            self._audit(
                outbox, "loan_updated", LOANS, loan.id,
                loan.snapshot(), updated.snapshot(), actor,
            )
        logger.info(
            "loan_updated",
            extra={"loan_id": str(loan_id), "terms_changed": terms_changed},
        )
        return updated

    def cancel_loan(self, loan_id: UUID, actor: Actor, reason: str | None = None) -> Loan:
        """Cancel an active loan and its active repayment deductions."""
        require_capability(actor, Capability.MANAGE_LOANS)
        with self._transaction() as outbox:
            loan = self.get_loan(loan_id)
            if not loan.is_active:
                raise StateConflictError(
                    f"Cannot cancel loan {loan_id} in status '{loan.status.value}'",
                    entity_type="loan",
                    entity_id=loan_id,
                )
            updated = replace(loan, status=LoanStatus.CANCELLED)
            self._compare_and_set(updated, loan)

            linked = [
                d for d in self._store.list_deductions(
                    status=DeductionStatus.ACTIVE, staff_id=loan.staff_id,
                )
                if d.loan_id == loan.id
            ]
            for deduction in linked:
                cancelled = replace(deduction, status=DeductionStatus.CANCELLED)
                self._store.update_deduction(cancelled)
                self._audit(
                    outbox, "individual_deduction_cancelled", DEDUCTIONS_RESOURCE, deduction.id,
                    deduction.snapshot(), {**cancelled.snapshot(), "reason": reason}, actor,
                )

            self._audit(
                outbox, "loan_cancelled", LOANS, loan.id,
                loan.snapshot(),
                {**updated.snapshot(), "reason": reason, "deductions_cancelled": len(linked)},
                actor,
            )
        logger.info(
            "loan_cancelled",
            extra={"loan_id": str(loan_id), "deductions_cancelled": len(linked)},
        )
        return updated

    # =========================================================================
    # Cooperative organizations
    # =========================================================================

    def create_cooperative(
        self,
        name: str,
        actor: Actor,
        interest_rate_default: Decimal = ZERO,
        contact_person: str | None = None,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> CooperativeOrganization:
        require_capability(actor, Capability.MANAGE_LOANS)
        cooperative = CooperativeOrganization(
            id=uuid4(),
            name=name.strip(),
            interest_rate_default=to_decimal(interest_rate_default),
            contact_person=contact_person,
            email=email,
            phone_number=phone_number,
        )
        if any(c.name == cooperative.name for c in self._store.list_cooperatives(active_only=False)):
            raise ValidationError(f"Cooperative '{cooperative.name}' already exists", field="name")

        with self._transaction() as outbox:
            self._store.add_cooperative(cooperative)
            self._audit(
                outbox, "cooperative_created", COOPERATIVES, cooperative.id,
                None, _cooperative_values(cooperative), actor,
            )
        logger.info("cooperative_created", extra={"cooperative_id": str(cooperative.id)})
        return cooperative

    def update_cooperative(self, cooperative_id: UUID, actor: Actor, **changes) -> CooperativeOrganization:
        """Update contact details or the default rate."""
        require_capability(actor, Capability.MANAGE_LOANS)
        allowed = {"name", "interest_rate_default", "contact_person", "email", "phone_number"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Cannot update fields: {sorted(unknown)}", field=sorted(unknown)[0])
        if "interest_rate_default" in changes:
            changes["interest_rate_default"] = to_decimal(changes["interest_rate_default"])

        with self._transaction() as outbox:
            cooperative = self.get_cooperative(cooperative_id)
            updated = replace(cooperative, **changes)
            self._store.update_cooperative(updated)
            self._audit(
                outbox, "cooperative_updated", COOPERATIVES, cooperative.id,
                _cooperative_values(cooperative), _cooperative_values(updated), actor,
            )
        return updated

    def deactivate_cooperative(self, cooperative_id: UUID, actor: Actor) -> CooperativeOrganization:
        """Deactivate; cooperatives referenced by loans are never deleted."""
        require_capability(actor, Capability.MANAGE_LOANS)
        with self._transaction() as outbox:
            cooperative = self.get_cooperative(cooperative_id)
            updated = replace(cooperative, is_active=False)
            self._store.update_cooperative(updated)
            self._audit(
                outbox, "cooperative_deactivated", COOPERATIVES, cooperative.id,
                {"is_active": cooperative.is_active}, {"is_active": False}, actor,
            )
        logger.info("cooperative_deactivated", extra={"cooperative_id": str(cooperative_id)})
        return updated


def _cooperative_values(cooperative: CooperativeOrganization) -> dict:
    return {
        "name": cooperative.name,
        "interest_rate_default": str(cooperative.interest_rate_default),
        "contact_person": cooperative.contact_person,
        "email": cooperative.email,
        "phone_number": cooperative.phone_number,
        "is_active": cooperative.is_active,
    }
