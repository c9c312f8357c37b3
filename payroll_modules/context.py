"""
payroll_modules.context -- Session-scoped wiring for the payroll services.

Responsibility:
    Creates every module service exactly once for one session and wires them
    to the same persistence adapter, sinks and clock.  Also owns the
    entity-change subscription registry for that session.

Architecture position:
    Modules layer, top.  The only place where module services are
    constructed and composed.

Invariants enforced:
    - Single-instance lifecycle: one ``LoanService``, one ``AdjustmentLedger``
      and so on per context; the ledger and the run service share the same
      ``LoanService``.
    - No module-level singletons: subscriptions live and die with the context.

Usage:
    context = SessionContext(InMemoryPersistence(), clock=clock)
    unsubscribe = context.subscriptions.subscribe("payroll_runs", callback)
    run = context.payroll.create_run("2024-01", actor)
    context.close()
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

from payroll_config.settings import PayrollSettings
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.workflow import AuditRecord
from payroll_kernel.logging_config import configure_logging, get_logger
from payroll_kernel.sinks import AuditSink, LoggingAuditSink, LoggingNotificationSink, NotificationSink
from payroll_modules.adjustments.service import AdjustmentLedger
from payroll_modules.batch import BatchOperations
from payroll_modules.leave.config import LeaveConfig
from payroll_modules.leave.service import LeaveService
from payroll_modules.loans.service import LoanService
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.service import PayrollRunService
from payroll_modules.persistence.port import PayrollPersistence

logger = get_logger("modules.context")

ChangeCallback = Callable[[AuditRecord], Any]


class ChangeSubscriptions:
    """
    Entity-change callbacks keyed by audit resource name.

    ``"*"`` subscribes to every resource.  A failing callback is logged and
    does not stop delivery to the others.
    """

    WILDCARD = "*"

    def __init__(self) -> None:
        self._callbacks: dict[str, list[ChangeCallback]] = defaultdict(list)
        self._closed = False

    def subscribe(self, resource: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        if self._closed:
            raise RuntimeError("Cannot subscribe on a closed session")
        self._callbacks[resource].append(callback)
        logger.debug("change_subscription_added", extra={"resource": resource})
        return lambda: self.unsubscribe(resource, callback)

    def unsubscribe(self, resource: str, callback: ChangeCallback) -> None:
        callbacks = self._callbacks.get(resource, [])
        if callback in callbacks:
            callbacks.remove(callback)
            logger.debug("change_subscription_removed", extra={"resource": resource})

    def subscriber_count(self, resource: str | None = None) -> int:
        if resource is None:
            return sum(len(c) for c in self._callbacks.values())
        return len(self._callbacks.get(resource, []))

    def publish(self, record: AuditRecord) -> int:
        """Deliver ``record`` to its resource's and wildcard subscribers."""
        delivered = 0
        targets = [
            *self._callbacks.get(record.resource, []),
            *self._callbacks.get(self.WILDCARD, []),
        ]
        for callback in targets:
            try:
                callback(record)
            except Exception:
                logger.exception(
                    "change_subscription_failed",
                    extra={"resource": record.resource, "action": record.action},
                )
                continue
            delivered += 1
        return delivered

    def clear(self) -> None:
        self._callbacks.clear()
        self._closed = True


class _PublishingAuditSink:
    """Forwards audit records to the real sink, then to subscribers."""

    def __init__(self, inner: AuditSink, subscriptions: ChangeSubscriptions) -> None:
        self._inner = inner
        self._subscriptions = subscriptions

    def emit(self, record: AuditRecord) -> None:
        self._inner.emit(record)
        self._subscriptions.publish(record)


class SessionContext:
    """
    Per-session container for the payroll services.

    Contract:
        Receives a persistence adapter and optional sinks, clock and
        configuration.  Constructs every service exactly once and exposes
        them as attributes.

    Non-goals:
        Does NOT own the persistence adapter's engine (callers dispose it).
    """

    def __init__(
        self,
        persistence: PayrollPersistence,
        audit_sink: AuditSink | None = None,
        notification_sink: NotificationSink | None = None,
        clock: Clock | None = None,
        payroll_config: PayrollConfig | None = None,
        leave_config: LeaveConfig | None = None,
    ):
        self.persistence = persistence
        self.clock = clock or SystemClock()
        self.subscriptions = ChangeSubscriptions()
        self.audit_sink = _PublishingAuditSink(audit_sink or LoggingAuditSink(), self.subscriptions)
        self.notification_sink = notification_sink or LoggingNotificationSink()

        self.loans = LoanService(persistence, self.audit_sink, self.notification_sink, self.clock)
        self.adjustments = AdjustmentLedger(
            persistence,
            self.audit_sink,
            self.notification_sink,
            self.clock,
            loan_service=self.loans,
        )
        self.payroll = PayrollRunService(
            persistence,
            self.audit_sink,
            self.notification_sink,
            self.clock,
            config=payroll_config,
            ledger=self.adjustments,
        )
        self.leave = LeaveService(
            persistence,
            self.audit_sink,
            self.notification_sink,
            self.clock,
            config=leave_config,
        )
        self.batch = BatchOperations(self.leave, self.loans)
        self._closed = False

        logger.info("session_context_opened")

    @classmethod
    def from_settings(
        cls,
        settings: PayrollSettings,
        persistence: PayrollPersistence | None = None,
        audit_sink: AuditSink | None = None,
        notification_sink: NotificationSink | None = None,
        clock: Clock | None = None,
    ) -> SessionContext:
        """
        Build a context from deployment settings.

        Without an explicit ``persistence`` the SQLAlchemy engine is
        initialized from ``settings.database`` and the context uses the
        SQL adapter.
        """
        configure_logging(level=settings.level)

        if persistence is None:
            from payroll_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
            from payroll_modules.persistence.sqlalchemy_store import SqlAlchemyPersistence

            init_engine_from_url(settings.database.url, **settings.database.engine_kwargs())
            if settings.database.create_tables:
                create_tables()
            persistence = SqlAlchemyPersistence(get_session_factory())

        logger.info(
            "session_context_from_settings",
            extra={"source": settings.source, "checksum": settings.checksum},
        )
        return cls(
            persistence,
            audit_sink=audit_sink,
            notification_sink=notification_sink,
            clock=clock,
            payroll_config=PayrollConfig.from_dict(settings.payroll),
            leave_config=LeaveConfig.from_dict(settings.leave),
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Drop all subscriptions.  Idempotent."""
        if self._closed:
            return
        self.subscriptions.clear()
        self._closed = True
        logger.info("session_context_closed")

    def __enter__(self) -> SessionContext:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
