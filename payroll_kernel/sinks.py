"""
Audit and notification sinks (``payroll_kernel.sinks``).

Responsibility
--------------
Ports through which services emit the side-effect intents planned by a
``WorkflowStep``, plus the stock implementations.

* ``AuditSink.emit`` is called inside the unit of work.  Audit is mandatory:
  a failing sink propagates and the operation rolls back.
* ``NotificationSink.notify`` is called after commit and is best-effort; the
  dispatcher logs ``notification_dispatch_failed`` and carries on.

Architecture position
---------------------
**Kernel layer** -- depends only on domain value objects and logging.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from payroll_kernel.domain.workflow import AuditRecord, Notification
from payroll_kernel.logging_config import get_logger

logger = get_logger("sinks")


@runtime_checkable
class AuditSink(Protocol):
    """Receives one audit record per state-changing operation."""

    def emit(self, record: AuditRecord) -> None: ...


@runtime_checkable
class NotificationSink(Protocol):
    """Delivers a message to one user."""

    def notify(self, notification: Notification) -> None: ...


class LoggingAuditSink:
    """Writes audit records to the structured log (``audit`` logger)."""

    def __init__(self) -> None:
        self._logger = get_logger("audit")

    def emit(self, record: AuditRecord) -> None:
        self._logger.info(
            "audit_record",
            extra={
                "audit_action": record.action,
                "resource": record.resource,
                "resource_id": record.resource_id,
                "old_values": record.old_values,
                "new_values": record.new_values,
                "audit_actor_id": record.actor_id,
                "occurred_at": record.occurred_at,
            },
        )


class LoggingNotificationSink:
    """Logs notifications instead of delivering them."""

    def notify(self, notification: Notification) -> None:
        logger.info(
            "notification_logged",
            extra={
                "user_id": notification.user_id,
                "title": notification.title,
                "notification_type": notification.type,
            },
        )


class RecordingAuditSink:
    """Keeps emitted audit records in memory."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def emit(self, record: AuditRecord) -> None:
        self.records.append(record)

    def actions(self) -> list[str]:
        return [r.action for r in self.records]


class RecordingNotificationSink:
    """Keeps delivered notifications in memory."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def for_user(self, user_id) -> list[Notification]:
        return [n for n in self.notifications if n.user_id == user_id]


def dispatch_notifications(
    sink: NotificationSink,
    notifications: Iterable[Notification],
) -> int:
    """
    Best-effort delivery of committed notifications.

    Returns the number delivered.  Individual failures are logged and never
    raised.
    """
    delivered = 0
    for notification in notifications:
        try:
            sink.notify(notification)
        except Exception:
            logger.warning(
                "notification_dispatch_failed",
                extra={
                    "user_id": notification.user_id,
                    "title": notification.title,
                },
                exc_info=True,
            )
            continue
        delivered += 1
    return delivered
