"""
Leave Module Service (``payroll_modules.leave.service``).

Responsibility
--------------
Leave requests (submit, approve, reject, cancel), yearly balances, the
monthly accrual ledger and leave type administration.  Working-day counts are
delegated to ``payroll_engines.calendar``; transition resolution to
``payroll_modules.leave.workflows``.

Invariants enforced
-------------------
* ``remaining_days`` never goes negative: approval of a paid request consumes
  days with a single conditional update in the same unit of work as the
  status change.
* Requests leave ``pending`` at most once (compare-and-set on status).
* Monthly accrual is idempotent per (staff, leave type, ``YYYY-MM``) through
  the ``LeaveAccrualEntry`` ledger.

Failure modes
-------------
* ``ValidationError`` -- unknown leave type, zero working days, bad dates.
* ``InsufficientBalanceError`` -- paid leave exceeding the remaining balance.
* ``InvalidTransitionError`` -- decision on a request that is no longer pending.
* ``StateConflictError`` -- cancelling a request that is no longer pending.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from payroll_engines.calendar import calculate_working_days
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.roles import Actor, Capability, Role, require_capability
from payroll_kernel.domain.values import ZERO, parse_period, to_decimal
from payroll_kernel.domain.workflow import AuditRecord, NotificationType, NotifyRoles
from payroll_kernel.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    InsufficientBalanceError,
    InvalidTransitionError,
    StateConflictError,
    UnauthorizedActorError,
    ValidationError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.sinks import AuditSink, NotificationSink
from payroll_modules._service_helpers import Outbox, transaction
from payroll_modules.leave.config import LeaveConfig
from payroll_modules.leave.helpers import initial_accrued_days, working_days_in_period
from payroll_modules.leave.models import (
    AccrualReport,
    LeaveAccrualEntry,
    LeaveBalance,
    LeaveRequest,
    LeaveRequestStatus,
    LeaveType,
    PayrollPeriodLeave,
)
from payroll_modules.leave.workflows import RESOURCE, STATUS_ACTIONS, plan_leave_transition
from payroll_modules.persistence.port import PayrollPersistence
from payroll_modules.staff.models import StaffStatus

logger = get_logger("modules.leave.service")

LEAVE_TYPES = "leave_types"
LEAVE_BALANCES = "staff_leave_balances"

_LEAVE_TYPE_FIELDS = frozenset({
    "name",
    "code",
    "is_paid",
    "max_days_per_year",
    "accrual_rate",
    "requires_approval",
    "is_active",
    "description",
})


class LeaveService:
    """
    Leave ledger and request workflow.

    Transaction boundary: every public mutating method owns one unit of work.
    """

    def __init__(
        self,
        persistence: PayrollPersistence,
        audit_sink: AuditSink,
        notification_sink: NotificationSink,
        clock: Clock | None = None,
        config: LeaveConfig | None = None,
    ):
        self._store = persistence
        self._audit_sink = audit_sink
        self._notification_sink = notification_sink
        self._clock = clock or SystemClock()
        self._config = config or LeaveConfig()

    def _transaction(self):
        return transaction(self._store, self._audit_sink, self._notification_sink)

    def _audit(self, outbox: Outbox, action: str, resource: str, entity_id: UUID,
               old: dict | None, new: dict | None, actor: Actor | None) -> None:
        outbox.audit(
            AuditRecord(
                action=action,
                resource=resource,
                resource_id=str(entity_id),
                old_values=old,
                new_values=new,
                actor_id=actor.user_id if actor is not None else None,
                occurred_at=self._clock.now(),
            )
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def calculate_working_days(self, start: date, end: date) -> int:
        return calculate_working_days(start, end, self._config.weekend_days)

    def get_leave_type(self, leave_type_id: UUID) -> LeaveType:
        leave_type = self._store.get_leave_type(leave_type_id)
        if leave_type is None:
            raise EntityNotFoundError("leave_type", leave_type_id)
        return leave_type

    def list_leave_types(self, active_only: bool = True) -> list[LeaveType]:
        return self._store.list_leave_types(active_only)

    def get_leave_request(self, request_id: UUID) -> LeaveRequest:
        request = self._store.get_leave_request(request_id)
        if request is None:
            raise EntityNotFoundError("leave_request", request_id)
        return request

    def get_staff_leave_balances(self, staff_id: UUID, year: int | None = None) -> list[LeaveBalance]:
        return self._store.list_leave_balances(staff_id, year or self._clock.today().year)

    def get_pending_leave_requests(self, staff_id: UUID | None = None) -> list[LeaveRequest]:
        return self._store.list_leave_requests(LeaveRequestStatus.PENDING, staff_id)

    def get_leave_requests_for_payroll_period(self, period: str) -> list[PayrollPeriodLeave]:
        """Approved requests overlapping ``period`` with their working days in it."""
        parse_period(period)
        types = {t.id: t for t in self._store.list_leave_types(active_only=False)}
        found: list[PayrollPeriodLeave] = []
        for request in self._store.list_leave_requests(LeaveRequestStatus.APPROVED):
            days = working_days_in_period(
                request.start_date, request.end_date, period, self._config.weekend_days,
            )
            if days == 0:
                continue
            leave_type = types.get(request.leave_type_id)
            found.append(
                PayrollPeriodLeave(
                    request=request,
                    days_in_period=days,
                    is_paid=leave_type.is_paid if leave_type else True,
                    leave_type_name=leave_type.name if leave_type else "leave",
                )
            )
        return found

    def check_leave_balance(
        self,
        staff_id: UUID,
        leave_type_id: UUID,
        requested_days: Decimal | int,
        year: int | None = None,
    ) -> Decimal | None:
        """
        Verify that ``requested_days`` fit the staff member's balance.

        Returns the remaining balance for paid types and ``None`` for unpaid
        types, which are always sufficient.

        Raises:
            ValidationError: unknown leave type.
            InsufficientBalanceError: paid type with no balance row, or too
                few remaining days.
        """
        leave_type = self._store.get_leave_type(leave_type_id)
        if leave_type is None:
            raise ValidationError(f"Unknown leave type {leave_type_id}", field="leave_type_id")
        if not leave_type.is_paid:
            return None

        requested = to_decimal(requested_days)
        balance = self._store.get_leave_balance(
            staff_id, leave_type_id, year or self._clock.today().year,
        )
        if balance is None:
            raise InsufficientBalanceError(leave_type.name, requested, None)
        if balance.remaining_days < requested:
            raise InsufficientBalanceError(leave_type.name, requested, balance.remaining_days)
        return balance.remaining_days

    # =========================================================================
    # Requests
    # =========================================================================

    def submit_leave_request(
        self,
        staff_id: UUID,
        leave_type_id: UUID,
        start_date: date,
        end_date: date,
        actor: Actor,
        reason: str = "",
    ) -> LeaveRequest:
        """
        Create a pending request and notify approvers.

        Balances are checked but not consumed; consumption happens at approval.
        """
        require_capability(actor, Capability.SUBMIT_LEAVE)
        staff = self._store.get_staff(staff_id)
        if staff is None:
            raise EntityNotFoundError("staff", staff_id)
        if actor.role == Role.STAFF and staff.user_id != actor.user_id:
            raise UnauthorizedActorError(actor.user_id, actor.role.value, Capability.SUBMIT_LEAVE.value)

        total_days = self.calculate_working_days(start_date, end_date)
        if total_days == 0:
            raise ValidationError(
                f"Leave from {start_date} to {end_date} spans no working days",
                field="end_date",
            )

        with LogContext.bind(actor_id=str(actor.user_id), staff_id=str(staff_id)):
            with self._transaction() as outbox:
                self.check_leave_balance(staff_id, leave_type_id, total_days, start_date.year)
                leave_type = self.get_leave_type(leave_type_id)
                request = LeaveRequest(
                    id=uuid4(),
                    staff_id=staff_id,
                    leave_type_id=leave_type_id,
                    start_date=start_date,
                    end_date=end_date,
                    total_days=total_days,
                    reason=reason,
                    requested_by=actor.user_id,
                )
                self._store.add_leave_request(request)
                self._audit(
                    outbox, "leave_request_submitted", RESOURCE, request.id, None,
                    {
                        "staff_id": str(staff_id),
                        "leave_type": leave_type.code,
                        "start_date": start_date.isoformat(),
                        "end_date": end_date.isoformat(),
                        "total_days": total_days,
                    },
                    actor,
                )
                outbox.notify(
                    NotifyRoles(
                        roles=tuple(r.value for r in self._config.approver_roles),
                        title="New Leave Request",
                        message=(
                            f"{staff.full_name} requested {total_days} day(s) of "
                            f"{leave_type.name} from {start_date} to {end_date}."
                        ),
                        type=NotificationType.INFO,
                    )
                )

            logger.info(
                "leave_request_submitted",
                extra={"request_id": str(request.id), "total_days": total_days},
            )
        return request

    def _apply_transition(
        self,
        request_id: UUID,
        action: str,
        actor: Actor,
        comments: str | None = None,
    ) -> LeaveRequest:
        with self._transaction() as outbox:
            request = self.get_leave_request(request_id)
            leave_type = self.get_leave_type(request.leave_type_id)
            staff = self._store.get_staff(request.staff_id)
            step = plan_leave_transition(
                request,
                action,
                actor,
                self._clock.now(),
                comments=comments,
                notify_user_id=staff.user_id if staff else None,
                leave_type_name=leave_type.name,
            )

            if action == "approve" and leave_type.is_paid:
                days = Decimal(request.total_days)
                year = request.start_date.year
                if not self._store.try_consume_leave_days(
                    request.staff_id, request.leave_type_id, year, days,
                ):
                    balance = self._store.get_leave_balance(
                        request.staff_id, request.leave_type_id, year,
                    )
                    raise InsufficientBalanceError(
                        leave_type.name, days, balance.remaining_days if balance else None,
                    )

            if not self._store.compare_and_set_leave_request(step.entity, request.status):
                current = self._store.get_leave_request(request_id)
                raise ConcurrentModificationError(
                    "leave_request",
                    request_id,
                    request.status.value,
                    current.status.value if current else None,
                )
            outbox.apply(step)

        logger.info(
            "leave_request_transitioned",
            extra={
                "request_id": str(request_id),
                "action": action,
                "from_state": step.from_state,
                "to_state": step.to_state,
            },
        )
        return step.entity

    def update_leave_request_status(
        self,
        request_id: UUID,
        status: LeaveRequestStatus | str,
        actor: Actor,
        comments: str | None = None,
    ) -> LeaveRequest:
        """Approve or reject a pending request."""
        status = LeaveRequestStatus(status)
        if status not in (LeaveRequestStatus.APPROVED, LeaveRequestStatus.REJECTED):
            raise ValidationError(
                f"Leave requests can only be approved or rejected, not '{status.value}'",
                field="status",
            )
        with LogContext.bind(actor_id=str(actor.user_id)):
            return self._apply_transition(request_id, STATUS_ACTIONS[status], actor, comments)

    def cancel_leave_request(self, request_id: UUID, actor: Actor) -> LeaveRequest:
        """
        Cancel a pending request.

        Staff may only cancel their own requests.

        Raises:
            StateConflictError: the request is no longer pending.
        """
        request = self.get_leave_request(request_id)
        if actor.role == Role.STAFF and request.requested_by != actor.user_id:
            raise UnauthorizedActorError(actor.user_id, actor.role.value, Capability.SUBMIT_LEAVE.value)
        with LogContext.bind(actor_id=str(actor.user_id)):
            try:
                return self._apply_transition(request_id, "cancel", actor)
            except InvalidTransitionError as exc:
                raise StateConflictError(
                    f"Leave request {request_id} is '{exc.current_state}' and cannot be cancelled",
                    entity_type="leave_request",
                    entity_id=request_id,
                ) from exc

    # =========================================================================
    # Balances and accrual
    # =========================================================================

    def initialize_staff_leave_balances(
        self, staff_id: UUID, as_of: date | None = None, actor: Actor | None = None,
    ) -> list[LeaveBalance]:
        """
        Create current-year rows for every active leave type.

        New rows open at ``accrual_rate x month`` (when prorating); existing
        rows are left untouched.  Returns the rows created.
        """
        as_of = as_of or self._clock.today()
        if self._store.get_staff(staff_id) is None:
            raise EntityNotFoundError("staff", staff_id)

        created: list[LeaveBalance] = []
        with self._transaction() as outbox:
            for leave_type in self._store.list_leave_types(active_only=True):
                if self._store.get_leave_balance(staff_id, leave_type.id, as_of.year) is not None:
                    continue
                balance = LeaveBalance(
                    id=uuid4(),
                    staff_id=staff_id,
                    leave_type_id=leave_type.id,
                    year=as_of.year,
                    accrued_days=initial_accrued_days(
                        leave_type, as_of, self._config.prorate_on_initialize,
                    ),
                )
                self._store.add_leave_balance(balance)
                self._audit(
                    outbox, "leave_balance_initialized", LEAVE_BALANCES, balance.id, None,
                    _balance_values(balance, leave_type), actor,
                )
                created.append(balance)

        logger.info(
            "leave_balances_initialized",
            extra={
                "staff_id": str(staff_id),
                "year": as_of.year,
                "balances_created": len(created),
            },
        )
        return created

    def accrue_monthly_leave(self, period: str | None = None) -> AccrualReport:
        """
        Add one month of accrual for every active staff member and leave type.

        Re-running for the same period adds nothing: each (staff, leave type,
        period) is recorded once in the accrual ledger.  Every credit is
        audited with no acting user.
        """
        period = period or self._clock.current_period()
        year, _ = parse_period(period)
        applied = skipped = created = 0

        with LogContext.bind(period=period):
            with self._transaction() as outbox:
                accruing = [
                    t for t in self._store.list_leave_types(active_only=True)
                    if t.accrual_rate > ZERO
                ]
                for staff in self._store.list_staff((StaffStatus.ACTIVE,)):
                    for leave_type in accruing:
                        if self._store.has_accrual_entry(staff.id, leave_type.id, period):
                            skipped += 1
                            continue
                        balance = self._store.get_leave_balance(staff.id, leave_type.id, year)
                        if balance is None:
                            balance = LeaveBalance(
                                id=uuid4(),
                                staff_id=staff.id,
                                leave_type_id=leave_type.id,
                                year=year,
                            )
                            self._store.add_leave_balance(balance)
                            created += 1
                        self._store.add_accrued_days(balance.id, leave_type.accrual_rate)
                        self._store.add_accrual_entry(
                            LeaveAccrualEntry(
                                id=uuid4(),
                                staff_id=staff.id,
                                leave_type_id=leave_type.id,
                                period=period,
                                days=leave_type.accrual_rate,
                                accrued_at=self._clock.now(),
                            )
                        )
                        credited = replace(
                            balance, accrued_days=balance.accrued_days + leave_type.accrual_rate,
                        )
                        self._audit(
                            outbox, "leave_accrued", LEAVE_BALANCES, balance.id,
                            _balance_values(balance, leave_type),
                            {**_balance_values(credited, leave_type), "period": period},
                            None,
                        )
                        applied += 1

            report = AccrualReport(
                period=period, applied=applied, skipped=skipped, balances_created=created,
            )
            logger.info(
                "leave_accrual_completed",
                extra={
                    "applied": applied,
                    "skipped": skipped,
                    "balances_created": created,
                },
            )
        return report

    # =========================================================================
    # Leave type administration
    # =========================================================================

    def create_leave_type(
        self,
        name: str,
        code: str,
        actor: Actor,
        is_paid: bool = True,
        max_days_per_year: int = 0,
        accrual_rate: Decimal | str | int = ZERO,
        requires_approval: bool = True,
        description: str | None = None,
    ) -> LeaveType:
        require_capability(actor, Capability.MANAGE_LEAVE_TYPES)
        if not name or not name.strip():
            raise ValidationError("Leave type name is required", field="name")
        code = code.strip().upper()
        if any(t.code == code for t in self._store.list_leave_types(active_only=False)):
            raise ValidationError(f"Leave type code '{code}' already exists", field="code")

        leave_type = LeaveType(
            id=uuid4(),
            name=name.strip(),
            code=code,
            is_paid=is_paid,
            max_days_per_year=max_days_per_year,
            accrual_rate=to_decimal(accrual_rate),
            requires_approval=requires_approval,
            description=description,
        )
        with self._transaction() as outbox:
            self._store.add_leave_type(leave_type)
            self._audit(
                outbox, "leave_type_created", LEAVE_TYPES, leave_type.id, None,
                _leave_type_values(leave_type), actor,
            )
        return leave_type

    def update_leave_type(self, leave_type_id: UUID, actor: Actor, **changes) -> LeaveType:
        require_capability(actor, Capability.MANAGE_LEAVE_TYPES)
        unknown = set(changes) - _LEAVE_TYPE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown leave type field(s): {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        if "accrual_rate" in changes:
            changes["accrual_rate"] = to_decimal(changes["accrual_rate"])
        if "name" in changes:
            if not changes["name"] or not changes["name"].strip():
                raise ValidationError("Leave type name is required", field="name")
            changes["name"] = changes["name"].strip()
        if "code" in changes:
            changes["code"] = (changes["code"] or "").strip().upper()
            if not changes["code"]:
                raise ValidationError("Leave type code is required", field="code")

        with self._transaction() as outbox:
            current = self.get_leave_type(leave_type_id)
            code = changes.get("code")
            if code is not None and any(
                t.code == code and t.id != leave_type_id
                for t in self._store.list_leave_types(active_only=False)
            ):
                raise ValidationError(f"Leave type code '{code}' already exists", field="code")
            updated = replace(current, **changes)
            self._store.update_leave_type(updated)
            self._audit(
                outbox, "leave_type_updated", LEAVE_TYPES, leave_type_id,
                _leave_type_values(current), _leave_type_values(updated), actor,
            )
        return updated


def _leave_type_values(leave_type: LeaveType) -> dict:
    return {
        "name": leave_type.name,
        "code": leave_type.code,
        "is_paid": leave_type.is_paid,
        "max_days_per_year": leave_type.max_days_per_year,
        "accrual_rate": str(leave_type.accrual_rate),
        "requires_approval": leave_type.requires_approval,
        "is_active": leave_type.is_active,
    }


def _balance_values(balance: LeaveBalance, leave_type: LeaveType) -> dict:
    return {
        "staff_id": str(balance.staff_id),
        "leave_type": leave_type.code,
        "year": balance.year,
        "accrued_days": str(balance.accrued_days),
        "used_days": str(balance.used_days),
    }
