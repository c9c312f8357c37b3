"""
Payroll Module Service (``payroll_modules.payroll.service``).

Responsibility
--------------
Orchestrates the payroll run lifecycle -- create, rerun (preview), submit,
approve, reject, process, reopen -- by delegating gross-to-net arithmetic to
``payroll_engines.payslip`` and transition resolution to the pure planner in
``payroll_modules.payroll.workflows``.

Architecture position
---------------------
**Modules layer** -- ``PayrollRunService`` is the sole public entry point for
payroll run operations.  It composes the engines, the persistence port, the
``AdjustmentLedger`` and the audit / notification sinks.

Invariants enforced
-------------------
* Every transition is a compare-and-set on (``status``, ``version``); losing
  the race raises ``ConcurrentModificationError`` and nothing is written.
* A processed run is locked: no recomputation and no payslip writes until it
  is reopened.
* Processing is atomic: payslips, run totals, applied allowances, recovered
  deductions and loan installments commit together or not at all.
* Run totals equal the sums over the run's payslips.
* Audit records are emitted inside the unit of work; notifications are
  delivered after commit.

Failure modes
-------------
* ``UnauthorizedActorError`` -- actor lacks the action's capability.
* ``InvalidTransitionError`` -- action not allowed from the current status.
* ``RunLockedError`` -- recomputation requested on a processed run.
* ``StateConflictError`` -- payslips requested before processing; a run for
  the same period and department already exists.
* Per-staff calculation failures are NOT raised: they are logged as
  ``payroll_staff_skipped`` and reported in ``skipped``.

Usage::

    service = PayrollRunService(persistence, audit_sink, notification_sink, clock=clock)
    run = service.create_run("2024-01", actor)
    service.submit_for_review(run.id, actor)
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID, uuid4

from payroll_engines.payslip import (
    AdjustmentLine,
    PayslipCalculation,
    build_pay_inputs,
    compute_payslip,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.roles import Actor, Capability, require_capability
from payroll_kernel.domain.values import ZERO, parse_period
from payroll_kernel.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    PayrollError,
    RunLockedError,
    StateConflictError,
    ValidationError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.sinks import AuditSink, NotificationSink
from payroll_modules._service_helpers import Outbox, transaction
from payroll_modules.adjustments.service import AdjustmentLedger
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.models import (
    PayrollComputation,
    PayrollRun,
    PayrollRunStatus,
    Payslip,
    ProcessResult,
    ReopenResult,
    SkippedStaff,
)
from payroll_modules.payroll.workflows import plan_create, plan_recalculate, plan_transition
from payroll_modules.persistence.port import PayrollPersistence
from payroll_modules.staff.models import Staff, StaffStatus

logger = get_logger("modules.payroll.service")


class PayrollRunService:
    """
    Orchestrates payroll runs through engines, ledger and persistence port.

    Contract
    --------
    * Mutating methods return the post-transition ``PayrollRun`` (or a
      result object wrapping it).
    * ``calculate_staff_payroll`` is read-only; ``rerun`` only refreshes a
      draft's stored totals.

    Transaction boundary: each public method owns one unit of work; the
    ledger joins it through its ``*_in`` methods.
    """

    def __init__(
        self,
        persistence: PayrollPersistence,
        audit_sink: AuditSink,
        notification_sink: NotificationSink,
        clock: Clock | None = None,
        config: PayrollConfig | None = None,
        ledger: AdjustmentLedger | None = None,
    ):
        self._store = persistence
        self._audit_sink = audit_sink
        self._notification_sink = notification_sink
        self._clock = clock or SystemClock()
        self._config = config or PayrollConfig()
        self._ledger = ledger or AdjustmentLedger(
            persistence, audit_sink, notification_sink, self._clock,
        )

    def _transaction(self):
        return transaction(self._store, self._audit_sink, self._notification_sink)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_run(self, run_id: UUID) -> PayrollRun:
        run = self._store.get_run(run_id)
        if run is None:
            raise EntityNotFoundError("payroll_run", run_id)
        return run

    def list_runs(self, period: str | None = None) -> list[PayrollRun]:
        return self._store.list_runs(period)

    def get_payslips(self, run_id: UUID, actor: Actor | None = None) -> list[Payslip]:
        """
        Payslips of a processed run.

        Raises:
            StateConflictError: the run is not processed.
        """
        if actor is not None:
            require_capability(actor, Capability.VIEW_PAYSLIPS)
        run = self.get_run(run_id)
        if run.status != PayrollRunStatus.PROCESSED:
            raise StateConflictError(
                f"Payslips are only available for processed runs; run {run_id} is "
                f"'{run.status.value}'",
                entity_type="payroll_run",
                entity_id=run_id,
            )
        return self._store.list_payslips(run_id)

    # =========================================================================
    # Computation
    # =========================================================================

    def _staff_statuses(self) -> tuple[StaffStatus, ...]:
        if self._config.pay_on_leave_staff:
            return (StaffStatus.ACTIVE, StaffStatus.ON_LEAVE)
        return (StaffStatus.ACTIVE,)

    def _adjustment_lines(
        self, period: str,
    ) -> tuple[dict[UUID, list[AdjustmentLine]], dict[UUID, list[AdjustmentLine]]]:
        allowance_lines: dict[UUID, list[AdjustmentLine]] = defaultdict(list)
        for allowance in self._ledger.get_pending_allowances_for_period(period):
            allowance_lines[allowance.staff_id].append(
                AdjustmentLine(type=allowance.type, amount=allowance.amount)
            )

        deduction_lines: dict[UUID, list[AdjustmentLine]] = defaultdict(list)
        for deduction, amount in self._ledger.deductions_for_payroll(period):
            deduction_lines[deduction.staff_id].append(
                AdjustmentLine(
                    type=deduction.type,
                    amount=amount,
                    is_loan_repayment=deduction.is_loan_repayment,
                )
            )
        return allowance_lines, deduction_lines

    def _calculate(
        self,
        staff: Staff,
        allowance_lines: list[AdjustmentLine],
        deduction_lines: list[AdjustmentLine],
        reference: tuple,
    ) -> PayslipCalculation:
        salary_table, allowance_rules, deduction_rules = reference
        inputs = build_pay_inputs(
            staff.id,
            staff.grade_level,
            staff.step,
            staff.position,
            allowance_lines,
            deduction_lines,
        )
        return compute_payslip(
            inputs,
            salary_table,
            allowance_rules,
            deduction_rules,
            allow_salary_fallback=self._config.allow_salary_fallback,
        )

    def _reference_data(self) -> tuple:
        return (
            self._store.get_salary_table(),
            self._store.list_allowance_rules(),
            self._store.list_deduction_rules(),
        )

    def _compute(
        self,
        period: str,
        department_id: UUID | None,
        run_id: UUID | None = None,
    ) -> PayrollComputation:
        """Run the gross-to-net pipeline for every staff member in scope."""
        staff_members = self._store.list_staff(self._staff_statuses(), department_id)
        reference = self._reference_data()
        allowance_lines, deduction_lines = self._adjustment_lines(period)

        calculations: list[PayslipCalculation] = []
        skipped: list[SkippedStaff] = []
        for staff in staff_members:
            try:
                calculation = self._calculate(
                    staff,
                    allowance_lines.get(staff.id, []),
                    deduction_lines.get(staff.id, []),
                    reference,
                )
            except PayrollError as exc:
                logger.warning(
                    "payroll_staff_skipped",
                    extra={
                        "staff_id": str(staff.id),
                        "staff_number": staff.staff_number,
                        "error_code": exc.code,
                        "reason": str(exc),
                    },
                )
                skipped.append(
                    SkippedStaff(
                        staff_id=staff.id,
                        staff_number=staff.staff_number,
                        error_code=exc.code,
                        reason=str(exc),
                    )
                )
                continue
            if calculation.salary_degraded:
                logger.warning(
                    "payroll_staff_salary_degraded",
                    extra={"staff_id": str(staff.id), "staff_number": staff.staff_number},
                )
            calculations.append(calculation)

        computation = PayrollComputation(
            period=period,
            calculations=tuple(calculations),
            skipped=tuple(skipped),
            run_id=run_id,
        )
        logger.info(
            "payroll_computed",
            extra={
                "period": period,
                "staff_count": computation.staff_count,
                "skipped_count": len(skipped),
                "gross_amount": str(computation.gross_amount),
                "net_amount": str(computation.net_amount),
            },
        )
        return computation

    def calculate_staff_payroll(self, staff_id: UUID, period: str) -> PayslipCalculation:
        """
        Gross-to-net for one staff member, without writing anything.

        Unlike bulk computation, failures are raised to the caller.
        """
        parse_period(period)
        staff = self._store.get_staff(staff_id)
        if staff is None:
            raise EntityNotFoundError("staff", staff_id)
        allowance_lines, deduction_lines = self._adjustment_lines(period)
        return self._calculate(
            staff,
            allowance_lines.get(staff.id, []),
            deduction_lines.get(staff.id, []),
            self._reference_data(),
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def _commit_transition(self, outbox: Outbox, step, previous: PayrollRun) -> PayrollRun:
        if not self._store.compare_and_set_run(step.entity, previous.status, previous.version):
            current = self._store.get_run(previous.id)
            raise ConcurrentModificationError(
                "payroll_run",
                previous.id,
                f"{previous.status.value}@v{previous.version}",
                None if current is None else f"{current.status.value}@v{current.version}",
            )
        outbox.apply(step)
        logger.info(
            "payroll_transition_applied",
            extra={
                "run_id": str(previous.id),
                "action": step.action,
                "from_state": step.from_state,
                "to_state": step.to_state,
                "version": step.entity.version,
            },
        )
        return step.entity

    def create_run(
        self,
        period: str,
        actor: Actor,
        department_id: UUID | None = None,
    ) -> PayrollRun:
        """
        Create a draft run for ``period`` (optionally one department).

        The draft carries preview totals; no payslips are written.

        Raises:
            StateConflictError: a run already exists for the period and scope.
        """
        parse_period(period)
        require_capability(actor, Capability.CREATE_RUN)
        with LogContext.bind(actor_id=str(actor.user_id), period=period):
            with self._transaction() as outbox:
                if any(r.department_id == department_id for r in self._store.list_runs(period)):
                    raise StateConflictError(
                        f"A payroll run for {period} already exists for this scope",
                        entity_type="payroll_run",
                    )
                run_id = uuid4()
                preview = self._compute(period, department_id, run_id)
                draft = PayrollRun(
                    id=run_id,
                    period=period,
                    department_id=department_id,
                    staff_count=preview.staff_count,
                    gross_amount=preview.gross_amount,
                    total_deductions=preview.total_deductions,
                    net_amount=preview.net_amount,
                )
                step = plan_create(draft, actor, self._clock.now())
                self._store.add_run(step.entity)
                outbox.apply(step)

            logger.info(
                "payroll_run_created",
                extra={
                    "run_id": str(run_id),
                    "department_id": str(department_id) if department_id else None,
                    "staff_count": preview.staff_count,
                },
            )
        return step.entity

    def rerun(self, run_id: UUID, actor: Actor) -> PayrollComputation:
        """
        Recompute a draft run and store its refreshed preview totals.

        No payslips are written.  The run's version is bumped through the
        same compare-and-set as a transition.

        Raises:
            RunLockedError: the run is processed.
            StateConflictError: the run is not in draft.
            ConcurrentModificationError: the run changed underneath.
        """
        require_capability(actor, Capability.RERUN_RUN)
        with self._transaction() as outbox:
            run = self.get_run(run_id)
            if run.is_locked:
                raise RunLockedError(run_id, "rerun")
            if run.status != PayrollRunStatus.DRAFT:
                raise StateConflictError(
                    f"Rerun is only valid in draft; run {run_id} is '{run.status.value}'",
                    entity_type="payroll_run",
                    entity_id=run_id,
                )
            with LogContext.bind(actor_id=str(actor.user_id), run_id=str(run_id), period=run.period):
                computation = self._compute(run.period, run.department_id, run_id)
                step = plan_recalculate(
                    run,
                    {
                        "staff_count": computation.staff_count,
                        "gross_amount": computation.gross_amount,
                        "total_deductions": computation.total_deductions,
                        "net_amount": computation.net_amount,
                    },
                    actor,
                    self._clock.now(),
                )
                self._commit_transition(outbox, step, run)
        return computation

    def _transition(
        self,
        run_id: UUID,
        action: str,
        actor: Actor,
        comments: str | None = None,
    ) -> PayrollRun:
        with self._transaction() as outbox:
            run = self.get_run(run_id)
            with LogContext.bind(actor_id=str(actor.user_id), run_id=str(run_id), period=run.period):
                step = plan_transition(
                    run,
                    action,
                    actor,
                    self._clock.now(),
                    comments=comments,
                    approver_roles=self._config.approver_roles,
                    admin_roles=self._config.admin_roles,
                )
                return self._commit_transition(outbox, step, run)

    def submit_for_review(self, run_id: UUID, actor: Actor) -> PayrollRun:
        """draft -> pending_review; approvers are notified."""
        return self._transition(run_id, "submit", actor)

    def approve(self, run_id: UUID, actor: Actor, comments: str | None = None) -> PayrollRun:
        """pending_review -> approved; the creator is notified."""
        return self._transition(run_id, "approve", actor, comments)

    def reject(self, run_id: UUID, actor: Actor, comments: str | None = None) -> PayrollRun:
        """pending_review -> draft; the creator is notified."""
        return self._transition(run_id, "reject", actor, comments)

    def process(self, run_id: UUID, actor: Actor) -> ProcessResult:
        """
        approved -> processed.

        Computes every staff member in scope, writes payslips, sets the run
        totals, marks the period's pending allowances applied and recovers
        due deductions (with linked loan installments), all in one unit of
        work.
        """
        with self._transaction() as outbox:
            run = self.get_run(run_id)
            with LogContext.bind(actor_id=str(actor.user_id), run_id=str(run_id), period=run.period):
                now = self._clock.now()
                # Guards first so nothing is computed for a refused transition.
                plan_transition(run, "process", actor, now)

                computation = self._compute(run.period, run.department_id, run_id)
                payslips = tuple(
                    _payslip_from(calculation, run) for calculation in computation.calculations
                )
                self._store.add_payslips(payslips)

                staff_ids = {c.staff_id for c in computation.calculations}
                allowances_applied = self._ledger.mark_allowances_applied_in(
                    outbox, run.period, run.id, staff_ids, actor,
                )
                deductions_applied, installments_applied = self._ledger.apply_period_deductions_in(
                    outbox, run.period, run.id, staff_ids, actor,
                )

                step = plan_transition(
                    run,
                    "process",
                    actor,
                    now,
                    changes={
                        "staff_count": computation.staff_count,
                        "gross_amount": computation.gross_amount,
                        "total_deductions": computation.total_deductions,
                        "net_amount": computation.net_amount,
                    },
                    approver_roles=self._config.approver_roles,
                    admin_roles=self._config.admin_roles,
                )
                processed = self._commit_transition(outbox, step, run)

                logger.info(
                    "payroll_run_processed",
                    extra={
                        "payslip_count": len(payslips),
                        "skipped_count": len(computation.skipped),
                        "net_amount": str(processed.net_amount),
                        "allowances_applied": allowances_applied,
                        "deductions_applied": deductions_applied,
                        "loan_installments_applied": installments_applied,
                    },
                )

        return ProcessResult(
            run=processed,
            payslips=payslips,
            skipped=computation.skipped,
            allowances_applied=allowances_applied,
            deductions_applied=deductions_applied,
            loan_installments_applied=installments_applied,
        )

    def reopen(self, run_id: UUID, actor: Actor, reason: str) -> ReopenResult:
        """
        processed -> draft (exceptional override, always audited).

        Deletes the run's payslips, zeroes its totals and returns its applied
        allowances to pending.  Recovered deductions stay in the ledger so a
        reprocess does not recover them twice.
        """
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reopen a payroll run", field="reason")

        with self._transaction() as outbox:
            run = self.get_run(run_id)
            with LogContext.bind(actor_id=str(actor.user_id), run_id=str(run_id), period=run.period):
                step = plan_transition(
                    run,
                    "reopen",
                    actor,
                    self._clock.now(),
                    comments=reason,
                    changes={
                        "staff_count": 0,
                        "gross_amount": ZERO,
                        "total_deductions": ZERO,
                        "net_amount": ZERO,
                    },
                    approver_roles=self._config.approver_roles,
                    admin_roles=self._config.admin_roles,
                )
                reopened = self._commit_transition(outbox, step, run)
                deleted = self._store.delete_payslips(run_id)
                reverted = self._ledger.revert_allowances_in(outbox, run_id, actor)

                logger.warning(
                    "payroll_run_reopened",
                    extra={
                        "payslips_deleted": deleted,
                        "allowances_reverted": reverted,
                        "reason": reason,
                    },
                )

        return ReopenResult(run=reopened, payslips_deleted=deleted, allowances_reverted=reverted)


def _payslip_from(calculation: PayslipCalculation, run: PayrollRun) -> Payslip:
    return Payslip(
        id=uuid4(),
        staff_id=calculation.staff_id,
        payroll_run_id=run.id,
        period=run.period,
        basic_salary=calculation.basic_salary,
        allowances=calculation.merged_allowances(),
        deductions=calculation.merged_deductions(),
        gross_pay=calculation.gross_pay,
        total_deductions=calculation.total_deductions,
        net_pay=calculation.net_pay,
        arrears=calculation.arrears,
        overtime=calculation.overtime,
        bonus=calculation.bonus,
    )
