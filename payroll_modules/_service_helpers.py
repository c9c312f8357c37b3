"""
Shared helpers for module service flows.

Used by ``payroll_modules/*/service.py`` to apply a planned ``WorkflowStep``:
audit records are buffered and emitted once the body of the outermost unit of
work has finished, notification intents are resolved to users inside it and
delivered only after it commits.

Architecture: Modules layer.  Imports from payroll_kernel and the
persistence port only.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from payroll_kernel.domain.workflow import AuditRecord, Notification, NotifyRoles, WorkflowStep
from payroll_kernel.logging_config import get_logger
from payroll_kernel.sinks import AuditSink, NotificationSink, dispatch_notifications
from payroll_modules.persistence.port import PayrollPersistence

logger = get_logger("modules.service_helpers")


class Outbox:
    """
    Side effects collected while a unit of work is open.

    Nothing reaches the audit sink until ``flush_audit`` runs, so a body
    that raises (a lost compare-and-set included) leaves no audit trail.
    """

    def __init__(self, audit_sink: AuditSink) -> None:
        self._audit_sink = audit_sink
        self.records: list[AuditRecord] = []
        self.intents: list[Notification | NotifyRoles] = []

    def audit(self, *records: AuditRecord) -> None:
        self.records.extend(records)

    def notify(self, *intents: Notification | NotifyRoles) -> None:
        self.intents.extend(intents)

    def apply(self, step: WorkflowStep) -> None:
        """Queue the step's audit records and notifications."""
        self.audit(*step.audit)
        self.notify(*step.notifications)

    def flush_audit(self) -> int:
        """Emit buffered records in order; sink errors propagate."""
        records, self.records = self.records, []
        for record in records:
            self._audit_sink.emit(record)
        return len(records)


def resolve_notifications(
    persistence: PayrollPersistence,
    intents: Iterable[Notification | NotifyRoles],
) -> list[Notification]:
    """Expand role-addressed intents into one ``Notification`` per user."""
    resolved: list[Notification] = []
    seen: set[tuple] = set()
    for intent in intents:
        if isinstance(intent, NotifyRoles):
            targets = [
                Notification(uid, intent.title, intent.message, intent.type)
                for uid in persistence.list_user_ids_by_roles(intent.roles)
            ]
        else:
            targets = [intent]
        for notification in targets:
            key = (notification.user_id, notification.title, notification.message)
            if key not in seen:
                seen.add(key)
                resolved.append(notification)
    return resolved


_active: ContextVar[tuple[PayrollPersistence, Outbox] | None] = ContextVar(
    "payroll_active_outbox", default=None,
)


@contextmanager
def transaction(
    persistence: PayrollPersistence,
    audit_sink: AuditSink,
    notification_sink: NotificationSink,
) -> Iterator[Outbox]:
    """
    One unit of work with deferred audit and post-commit notification delivery.

    A transaction opened while another is active on the same persistence
    joins it and shares its outbox.  Buffered audit records are emitted when
    the outermost body completes, still inside the unit, so an audit failure
    rolls the unit back.  Notifications are only delivered once the outermost
    unit has committed.
    """
    active = _active.get()
    if active is not None and active[0] is persistence:
        yield active[1]
        return

    outbox = Outbox(audit_sink)
    token = _active.set((persistence, outbox))
    try:
        with persistence.unit_of_work():
            yield outbox
            notifications = resolve_notifications(persistence, outbox.intents)
            outbox.flush_audit()
    finally:
        _active.reset(token)
    if notifications:
        delivered = dispatch_notifications(notification_sink, notifications)
        logger.debug(
            "notifications_dispatched",
            extra={"requested": len(notifications), "delivered": delivered},
        )
