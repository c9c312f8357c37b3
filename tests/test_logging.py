"""Tests for payroll_kernel.logging_config."""

import json
import logging
import threading
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from payroll_kernel.domain.roles import Role
from payroll_kernel.exceptions import InsufficientBalanceError
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Configure logging into a buffer; return a reader of parsed records."""
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)

    def _configure(level: int = logging.INFO):
        configure_logging(handler=handler, level=level)

    def _records() -> list[dict]:
        return [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    _records.configure = _configure
    return _records


class TestRecordShape:

    def test_core_fields(self, emitted):
        emitted.configure()
        get_logger("engines.tax").info("paye_computed")

        [record] = emitted()
        assert record["message"] == "paye_computed"
        assert record["level"] == "INFO"
        assert record["logger"] == "payroll_kernel.engines.tax"
        assert record["ts"].endswith("+00:00")

    def test_extra_values_serialized(self, emitted):
        emitted.configure()
        run_id = uuid4()
        get_logger("modules.payroll").info(
            "payroll_run_created",
            extra={
                "run_id": run_id,
                "gross_amount": Decimal("218000.00"),
                "pay_date": date(2024, 1, 31),
                "role": Role.PAYROLL_ADMIN,
                "weekend_days": frozenset({7, 6}),
            },
        )

        [record] = emitted()
        assert record["run_id"] == str(run_id)
        assert record["gross_amount"] == "218000.00"
        assert record["pay_date"] == "2024-01-31"
        assert record["role"] == "payroll_admin"
        assert record["weekend_days"] == [6, 7]

    def test_level_threshold(self, emitted):
        emitted.configure()
        logger = get_logger("test")
        logger.debug("hidden")
        logger.warning("shown")

        assert [r["message"] for r in emitted()] == ["shown"]

    def test_payroll_exception_fields(self, emitted):
        emitted.configure()
        try:
            raise InsufficientBalanceError("Annual Leave", Decimal("5"), Decimal("2.5"))
        except InsufficientBalanceError:
            get_logger("test").error("leave_request_failed", exc_info=True)

        [record] = emitted()
        assert record["exc_type"] == "InsufficientBalanceError"
        assert record["exc_code"] == "INSUFFICIENT_BALANCE"
        assert record["exc_resource"] == "Annual Leave"
        assert record["exc_available"] == "2.5"
        assert "Traceback" in record["traceback"]

    def test_plain_exception_has_no_code(self, emitted):
        emitted.configure()
        try:
            raise KeyError("grade")
        except KeyError:
            get_logger("test").exception("lookup_failed")

        [record] = emitted()
        assert record["exc_type"] == "KeyError"
        assert "exc_code" not in record


class TestContextFields:

    def test_bound_fields_stamped_on_records(self, emitted):
        emitted.configure()
        with LogContext.bind(run_id="r-1", period="2024-01", actor_id=uuid4()):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = emitted()
        assert inside["run_id"] == "r-1"
        assert inside["period"] == "2024-01"
        assert "run_id" not in outside

    def test_extra_does_not_override_context(self, emitted):
        emitted.configure()
        with LogContext.bind(period="2024-01"):
            get_logger("test").info("x", extra={"period": "2099-12"})

        [record] = emitted()
        assert record["period"] == "2024-01"

    def test_nested_bind_restores_outer(self):
        LogContext.set(period="2024-01")
        with LogContext.bind(period="2024-02", staff_id="s-1"):
            assert LogContext.get_all() == {"period": "2024-02", "staff_id": "s-1"}
        assert LogContext.get_all() == {"period": "2024-01"}

    def test_set_ignores_none_and_unknown(self):
        LogContext.set(correlation_id="c", run_id=None, department="REG")
        assert LogContext.get_all() == {"correlation_id": "c"}

    def test_clear(self):
        LogContext.set(actor_id="a", run_id="r")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_threads_do_not_share_context(self):
        LogContext.set(run_id="main")
        seen = {}

        def worker():
            seen["before"] = LogContext.get_all()
            LogContext.set(run_id="worker")
            seen["after"] = LogContext.get_all()

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen == {"before": {}, "after": {"run_id": "worker"}}
        assert LogContext.get_all() == {"run_id": "main"}


class TestConfiguration:

    def test_second_configure_is_ignored(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))
        namespace = logging.getLogger("payroll_kernel")
        assert len(namespace.handlers) == 1
        assert isinstance(namespace.handlers[0].formatter, StructuredFormatter)
        assert namespace.propagate is False

    def test_reset_detaches_handlers(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()
        assert logging.getLogger("payroll_kernel").handlers == []

    def test_debug_level_reaches_nested_loggers(self, emitted):
        emitted.configure(level=logging.DEBUG)
        get_logger("modules.leave.service").debug("leave_balance_checked")

        [record] = emitted()
        assert record["logger"] == "payroll_kernel.modules.leave.service"
