"""
Individual Adjustment Ledger (``payroll_modules.adjustments.service``).

Responsibility
--------------
Per-staff ad-hoc allowances and deductions and their interaction with
payroll runs:

* allowances: pending -> applied | cancelled.  Pending entries of the run's
  period are pulled into the computation, marked applied when the run is
  processed and returned to pending when it is reopened.
* deductions: active -> paid_off | cancelled.  Recovery is recorded once per
  (deduction, period) in the ``DeductionApplication`` ledger.  A
  loan-repayment deduction applies the linked loan's next installment in the
  same unit of work.

Invariants enforced
-------------------
* ``apply_deduction`` is idempotent per (deduction, period).
* Only pending allowances and active deductions can be edited.
* A deduction's ``remaining_balance`` never drops below zero.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace
from decimal import Decimal
from uuid import UUID, uuid4

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.roles import Actor, Capability, require_capability
from payroll_kernel.domain.values import ZERO, parse_period, quantize_money, to_decimal
from payroll_kernel.domain.workflow import AuditRecord
from payroll_kernel.exceptions import (
    EntityNotFoundError,
    StateConflictError,
    ValidationError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.sinks import AuditSink, NotificationSink
from payroll_modules._service_helpers import Outbox, transaction
from payroll_modules.adjustments.models import (
    DEDUCTIONS_RESOURCE,
    AllowanceStatus,
    DeductionApplication,
    DeductionStatus,
    IndividualAllowance,
    IndividualDeduction,
)
from payroll_modules.loans.models import LoanStatus
from payroll_modules.loans.service import LoanService
from payroll_modules.persistence.port import PayrollPersistence

logger = get_logger("modules.adjustments.service")

ALLOWANCES = "staff_individual_allowances"
DEDUCTIONS = DEDUCTIONS_RESOURCE


def _allowance_values(allowance: IndividualAllowance) -> dict:
    return {
        "type": allowance.type,
        "amount": str(allowance.amount),
        "period": allowance.period,
        "status": allowance.status.value,
        "payroll_run_id": str(allowance.payroll_run_id) if allowance.payroll_run_id else None,
    }


class AdjustmentLedger:
    """
    Ad-hoc allowance and deduction ledger.

    Public methods own their unit of work.  The ``*_in`` methods join the
    caller's unit of work; ``PayrollRunService`` uses them while processing
    and reopening a run.
    """

    def __init__(
        self,
        persistence: PayrollPersistence,
        audit_sink: AuditSink,
        notification_sink: NotificationSink,
        clock: Clock | None = None,
        loan_service: LoanService | None = None,
    ):
        self._store = persistence
        self._audit_sink = audit_sink
        self._notification_sink = notification_sink
        self._clock = clock or SystemClock()
        self._loans = loan_service or LoanService(
            persistence, audit_sink, notification_sink, self._clock,
        )

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

    def _require_staff(self, staff_id: UUID) -> None:
        if self._store.get_staff(staff_id) is None:
            raise EntityNotFoundError("staff", staff_id)

    # =========================================================================
    # Allowances
    # =========================================================================

    def get_allowance(self, allowance_id: UUID) -> IndividualAllowance:
        allowance = self._store.get_allowance(allowance_id)
        if allowance is None:
            raise EntityNotFoundError("individual_allowance", allowance_id)
        return allowance

    def add_individual_allowance(
        self,
        staff_id: UUID,
        type: str,
        amount: Decimal,
        period: str,
        actor: Actor,
        description: str | None = None,
    ) -> IndividualAllowance:
        require_capability(actor, Capability.MANAGE_ADJUSTMENTS)
        self._require_staff(staff_id)
        allowance = IndividualAllowance(
            id=uuid4(),
            staff_id=staff_id,
            type=type,
            amount=quantize_money(to_decimal(amount)),
            period=period,
            description=description,
            created_by=actor.user_id,
        )
        with self._transaction() as outbox:
            self._store.add_allowance(allowance)
            self._audit(
                outbox, "individual_allowance_created", ALLOWANCES, allowance.id,
                None, _allowance_values(allowance), actor,
            )
        logger.info(
            "individual_allowance_created",
            extra={"allowance_id": str(allowance.id), "period": period, "type": type},
        )
        return allowance

    def update_individual_allowance(
        self,
        allowance_id: UUID,
        actor: Actor,
        type: str | None = None,
        amount: Decimal | None = None,
        period: str | None = None,
        description: str | None = None,
    ) -> IndividualAllowance:
        """Edit a pending allowance."""
        require_capability(actor, Capability.MANAGE_ADJUSTMENTS)
        with self._transaction() as outbox:
            allowance = self.get_allowance(allowance_id)
            if allowance.status != AllowanceStatus.PENDING:
                raise StateConflictError(
                    f"Allowance {allowance_id} is {allowance.status.value}; only pending "
                    "allowances can be edited",
                    entity_type="individual_allowance",
                    entity_id=allowance_id,
                )
            updated = replace(
                allowance,
                type=type if type is not None else allowance.type,
                amount=quantize_money(to_decimal(amount)) if amount is not None else allowance.amount,
                period=period if period is not None else allowance.period,
                description=description if description is not None else allowance.description,
            )
            self._store.update_allowance(updated)
            self._audit(
                outbox, "individual_allowance_updated", ALLOWANCES, allowance.id,
                _allowance_values(allowance), _allowance_values(updated), actor,
            )
        return updated

    def cancel_individual_allowance(self, allowance_id: UUID, actor: Actor) -> IndividualAllowance:
        require_capability(actor, Capability.MANAGE_ADJUSTMENTS)
        with self._transaction() as outbox:
            allowance = self.get_allowance(allowance_id)
            if allowance.status != AllowanceStatus.PENDING:
                raise StateConflictError(
                    f"Allowance {allowance_id} is {allowance.status.value}; only pending "
                    "allowances can be cancelled",
                    entity_type="individual_allowance",
                    entity_id=allowance_id,
                )
            updated = replace(allowance, status=AllowanceStatus.CANCELLED)
            self._store.update_allowance(updated)
            self._audit(
                outbox, "individual_allowance_cancelled", ALLOWANCES, allowance.id,
                _allowance_values(allowance), _allowance_values(updated), actor,
            )
        return updated

    def get_pending_allowances_for_period(
        self, period: str, staff_id: UUID | None = None,
    ) -> list[IndividualAllowance]:
        parse_period(period)
        return self._store.list_allowances(
            period=period, status=AllowanceStatus.PENDING, staff_id=staff_id,
        )

    def mark_allowances_applied_in(
        self,
        outbox: Outbox,
        period: str,
        payroll_run_id: UUID,
        staff_ids: Collection[UUID],
        actor: Actor,
    ) -> int:
        """Mark the period's pending allowances of ``staff_ids`` as applied."""
        applied = 0
        for allowance in self.get_pending_allowances_for_period(period):
            if allowance.staff_id not in staff_ids:
                continue
            updated = replace(
                allowance, status=AllowanceStatus.APPLIED, payroll_run_id=payroll_run_id,
            )
            self._store.update_allowance(updated)
            self._audit(
                outbox, "individual_allowance_applied", ALLOWANCES, allowance.id,
                _allowance_values(allowance), _allowance_values(updated), actor,
            )
            applied += 1
        return applied

    def revert_allowances_in(self, outbox: Outbox, payroll_run_id: UUID, actor: Actor) -> int:
        """Return a reopened run's applied allowances to pending."""
        reverted = 0
        for allowance in self._store.list_allowances(
            status=AllowanceStatus.APPLIED, payroll_run_id=payroll_run_id,
        ):
            updated = replace(allowance, status=AllowanceStatus.PENDING, payroll_run_id=None)
            self._store.update_allowance(updated)
            self._audit(
                outbox, "individual_allowance_reverted", ALLOWANCES, allowance.id,
                _allowance_values(allowance), _allowance_values(updated), actor,
            )
            reverted += 1
        return reverted

    # =========================================================================
    # Deductions
    # =========================================================================

    def get_deduction(self, deduction_id: UUID) -> IndividualDeduction:
        deduction = self._store.get_deduction(deduction_id)
        if deduction is None:
            raise EntityNotFoundError("individual_deduction", deduction_id)
        return deduction

    def add_individual_deduction(
        self,
        staff_id: UUID,
        type: str,
        amount: Decimal,
        period: str,
        actor: Actor,
        total_amount: Decimal | None = None,
        start_period: str | None = None,
        end_period: str | None = None,
        description: str | None = None,
        loan_id: UUID | None = None,
        is_loan_repayment: bool = False,
    ) -> IndividualDeduction:
        """
        Record a deduction.  ``total_amount`` makes it a balance that is
        recovered ``amount`` at a time; a loan-repayment deduction must
        reference an active loan of the same staff member.
        """
        require_capability(actor, Capability.MANAGE_ADJUSTMENTS)
        self._require_staff(staff_id)
        if is_loan_repayment or loan_id is not None:
            if loan_id is None:
                raise ValidationError("A loan repayment must reference a loan", field="loan_id")
            loan = self._loans.get_loan(loan_id)
            if loan.staff_id != staff_id:
                raise ValidationError(
                    f"Loan {loan_id} does not belong to staff {staff_id}", field="loan_id",
                )
            if not loan.is_active:
                raise StateConflictError(
                    f"Loan {loan_id} is {loan.status.value}",
                    entity_type="loan",
                    entity_id=loan_id,
                )

        total = quantize_money(to_decimal(total_amount)) if total_amount is not None else None
        deduction = IndividualDeduction(
            id=uuid4(),
            staff_id=staff_id,
            type=type,
            amount=quantize_money(to_decimal(amount)),
            period=period,
            total_amount=total,
            remaining_balance=total,
            start_period=start_period,
            end_period=end_period,
            description=description,
            loan_id=loan_id,
            is_loan_repayment=is_loan_repayment or loan_id is not None,
            created_by=actor.user_id,
        )
        with self._transaction() as outbox:
            self._store.add_deduction(deduction)
            self._audit(
                outbox, "individual_deduction_created", DEDUCTIONS, deduction.id,
                None, deduction.snapshot(), actor,
            )
        logger.info(
            "individual_deduction_created",
            extra={
                "deduction_id": str(deduction.id),
                "period": period,
                "type": type,
                "is_loan_repayment": deduction.is_loan_repayment,
            },
        )
        return deduction

    def update_individual_deduction(
        self,
        deduction_id: UUID,
        actor: Actor,
        type: str | None = None,
        amount: Decimal | None = None,
        total_amount: Decimal | None = None,
        start_period: str | None = None,
        end_period: str | None = None,
        description: str | None = None,
    ) -> IndividualDeduction:
        """
        Edit an active deduction.  Changing ``total_amount`` keeps what has
        already been recovered and recomputes the remaining balance.
        """
        require_capability(actor, Capability.MANAGE_ADJUSTMENTS)
        with self._transaction() as outbox:
            deduction = self.get_deduction(deduction_id)
            if deduction.status != DeductionStatus.ACTIVE:
                raise StateConflictError(
                    f"Deduction {deduction_id} is {deduction.status.value}; only active "
                    "deductions can be edited",
                    entity_type="individual_deduction",
                    entity_id=deduction_id,
                )

            total = deduction.total_amount
            remaining = deduction.remaining_balance
            if total_amount is not None:
                new_total = quantize_money(to_decimal(total_amount))
                recovered = (total - remaining) if total is not None and remaining is not None else ZERO
                if new_total < recovered:
                    raise ValidationError(
                        f"total_amount {new_total} is below the {recovered} already recovered",
                        field="total_amount",
                    )
                total, remaining = new_total, new_total - recovered

            updated = replace(
                deduction,
                type=type if type is not None else deduction.type,
                amount=quantize_money(to_decimal(amount)) if amount is not None else deduction.amount,
                total_amount=total,
                remaining_balance=remaining,
                start_period=start_period if start_period is not None else deduction.start_period,
                end_period=end_period if end_period is not None else deduction.end_period,
                description=description if description is not None else deduction.description,
            )
            self._store.update_deduction(updated)
            self._audit(
                outbox, "individual_deduction_updated", DEDUCTIONS, deduction.id,
                deduction.snapshot(), updated.snapshot(), actor,
            )
        return updated

    def cancel_individual_deduction(self, deduction_id: UUID, actor: Actor) -> IndividualDeduction:
        require_capability(actor, Capability.MANAGE_ADJUSTMENTS)
        with self._transaction() as outbox:
            deduction = self.get_deduction(deduction_id)
            if deduction.status != DeductionStatus.ACTIVE:
                raise StateConflictError(
                    f"Deduction {deduction_id} is {deduction.status.value}; only active "
                    "deductions can be cancelled",
                    entity_type="individual_deduction",
                    entity_id=deduction_id,
                )
            updated = replace(deduction, status=DeductionStatus.CANCELLED)
            self._store.update_deduction(updated)
            self._audit(
                outbox, "individual_deduction_cancelled", DEDUCTIONS, deduction.id,
                deduction.snapshot(), updated.snapshot(), actor,
            )
        return updated

    def get_active_deductions_for_period(
        self, period: str, staff_id: UUID | None = None,
    ) -> list[IndividualDeduction]:
        """Active deductions whose period matches or whose window covers ``period``."""
        parse_period(period)
        return [
            d for d in self._store.list_deductions(status=DeductionStatus.ACTIVE, staff_id=staff_id)
            if d.covers(period)
        ]

    def deductions_for_payroll(self, period: str) -> list[tuple[IndividualDeduction, Decimal]]:
        """
        Deduction amounts that belong on ``period``'s payslips.

        Deductions already recovered for the period (a reopened run being
        reprocessed) carry their recorded amount, whatever their status now.
        Otherwise active deductions covering the period carry what is due.
        """
        parse_period(period)
        recorded = {a.deduction_id: a for a in self._store.list_deduction_applications(period)}
        lines: list[tuple[IndividualDeduction, Decimal]] = []
        for deduction in self._store.list_deductions():
            application = recorded.get(deduction.id)
            if application is not None:
                lines.append((deduction, application.amount))
            elif deduction.status == DeductionStatus.ACTIVE and deduction.covers(period):
                due = deduction.amount_due()
                if due > 0:
                    lines.append((deduction, due))
        return lines

    def apply_deduction_in(
        self,
        outbox: Outbox,
        deduction: IndividualDeduction,
        period: str,
        actor: Actor,
        payroll_run_id: UUID | None = None,
    ) -> tuple[DeductionApplication | None, bool]:
        """
        Recover ``deduction`` for ``period`` inside the caller's unit of work.

        Returns ``(application, loan_installment_applied)``; the application
        is ``None`` when the period was already recovered.
        """
        if self._store.get_deduction_application(deduction.id, period) is not None:
            logger.debug(
                "deduction_already_applied",
                extra={"deduction_id": str(deduction.id), "period": period},
            )
            return None, False
        if deduction.status != DeductionStatus.ACTIVE:
            raise StateConflictError(
                f"Deduction {deduction.id} is {deduction.status.value}",
                entity_type="individual_deduction",
                entity_id=deduction.id,
            )

        amount = deduction.amount_due()
        status = deduction.status
        remaining = deduction.remaining_balance
        if remaining is not None:
            remaining = remaining - amount
            if remaining <= 0:
                remaining = ZERO
                status = DeductionStatus.PAID_OFF

        loan_applied = False
        if deduction.is_loan_repayment and deduction.loan_id is not None:
            loan = self._loans.get_loan(deduction.loan_id)
            if loan.is_active:
                loan = self._loans.apply_installment_in(outbox, deduction.loan_id, actor)
                loan_applied = True
            else:
                logger.warning(
                    "deduction_loan_not_active",
                    extra={
                        "deduction_id": str(deduction.id),
                        "loan_id": str(loan.id),
                        "loan_status": loan.status.value,
                    },
                )
            if loan.status != LoanStatus.ACTIVE:
                status = DeductionStatus.PAID_OFF

        application = DeductionApplication(
            id=uuid4(),
            deduction_id=deduction.id,
            period=period,
            amount=amount,
            payroll_run_id=payroll_run_id,
            applied_at=self._clock.now(),
        )
        self._store.add_deduction_application(application)

        updated = replace(deduction, remaining_balance=remaining, status=status)
        if updated != deduction:
            self._store.update_deduction(updated)
        self._audit(
            outbox, "individual_deduction_applied", DEDUCTIONS, deduction.id,
            deduction.snapshot(),
            {**updated.snapshot(), "applied_period": period, "applied_amount": str(amount)},
            actor,
        )
        return application, loan_applied

    def apply_deduction(
        self,
        deduction_id: UUID,
        period: str,
        actor: Actor,
        payroll_run_id: UUID | None = None,
    ) -> DeductionApplication | None:
        """Recover one deduction for one period.  Idempotent per (deduction, period)."""
        require_capability(actor, Capability.MANAGE_ADJUSTMENTS)
        parse_period(period)
        with self._transaction() as outbox:
            deduction = self.get_deduction(deduction_id)
            application, _ = self.apply_deduction_in(
                outbox, deduction, period, actor, payroll_run_id,
            )
        return application

    def apply_period_deductions_in(
        self,
        outbox: Outbox,
        period: str,
        payroll_run_id: UUID,
        staff_ids: Collection[UUID],
        actor: Actor,
    ) -> tuple[int, int]:
        """
        Recover every due deduction of ``staff_ids`` for ``period``.

        Returns ``(deductions_applied, loan_installments_applied)``.
        """
        applied = 0
        installments = 0
        for deduction in self.get_active_deductions_for_period(period):
            if deduction.staff_id not in staff_ids:
                continue
            application, loan_applied = self.apply_deduction_in(
                outbox, deduction, period, actor, payroll_run_id,
            )
            if application is not None:
                applied += 1
            if loan_applied:
                installments += 1
        return applied, installments
