"""
payroll_modules.batch -- Operations an external scheduler calls.

Bundles the recurring jobs (monthly leave accrual, balance initialization)
and the loan schedule calculations behind one facade.  Each job delegates to
its module service and logs a start/finish pair.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from payroll_engines.amortization import InterestMethod, LoanInstallment, LoanScheduleSummary
from payroll_kernel.domain.roles import Actor, Capability, require_capability
from payroll_kernel.domain.values import to_decimal
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules.leave.models import AccrualReport, LeaveBalance
from payroll_modules.leave.service import LeaveService
from payroll_modules.loans.service import LoanService

logger = get_logger("modules.batch")


class BatchOperations:
    """Scheduler-facing facade over the leave and loan services."""

    def __init__(self, leave_service: LeaveService, loan_service: LoanService):
        self._leave = leave_service
        self._loans = loan_service

    def accrue_monthly_leave(
        self, period: str | None = None, actor: Actor | None = None,
    ) -> AccrualReport:
        """
        Monthly accrual job.  Safe to run more than once per period.

        ``actor`` is optional for system-triggered runs; when given it must
        hold ``RUN_BATCH``.
        """
        if actor is not None:
            require_capability(actor, Capability.RUN_BATCH)
        logger.info("batch_job_started", extra={"job": "accrue_monthly_leave"})
        with LogContext.bind(actor_id=str(actor.user_id) if actor else "system"):
            report = self._leave.accrue_monthly_leave(period)
        logger.info(
            "batch_job_completed",
            extra={
                "job": "accrue_monthly_leave",
                "period": report.period,
                "applied": report.applied,
                "skipped": report.skipped,
            },
        )
        return report

    def initialize_staff_leave_balances(
        self,
        staff_id: UUID,
        as_of: date | None = None,
        actor: Actor | None = None,
    ) -> list[LeaveBalance]:
        if actor is not None:
            require_capability(actor, Capability.RUN_BATCH)
        logger.info(
            "batch_job_started",
            extra={"job": "initialize_staff_leave_balances", "staff_id": str(staff_id)},
        )
        created = self._leave.initialize_staff_leave_balances(staff_id, as_of, actor)
        logger.info(
            "batch_job_completed",
            extra={"job": "initialize_staff_leave_balances", "balances_created": len(created)},
        )
        return created

    def calculate_loan_schedule(
        self,
        principal: Decimal | str | int,
        annual_rate: Decimal | str | int,
        installments: int,
        method: InterestMethod | str = InterestMethod.FLAT,
    ) -> LoanScheduleSummary:
        return self._loans.calculate_loan_schedule(
            to_decimal(principal), to_decimal(annual_rate), installments, InterestMethod(method),
        )

    def get_loan_repayment_schedule(self, loan_id: UUID) -> tuple[LoanInstallment, ...]:
        return self._loans.get_repayment_schedule(loan_id)
