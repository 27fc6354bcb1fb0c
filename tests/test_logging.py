"""Tests for the structured logging system (fiscal_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from fiscal_kernel.exceptions import TransportError
from fiscal_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests; restore the suite configuration after."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "fiscal_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("correction_event_processing", extra={"sequence": 2, "status": "processing"})

        record = _parse_log(stream)
        assert record["sequence"] == 2
        assert record["status"] == "processing"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", correction_event_id="evt-456")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["correction_event_id"] == "evt-456"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise TransportError("NFeRecepcaoEvento4 failed after 3 attempt(s)", url="https://x", attempts=3)
        except TransportError:
            get_logger("test").error("submission_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "TRANSPORT_ERROR"
        assert record["exc_type"] == "TransportError"
        assert record["exc_attempts"] == 3
        assert record["exc_url"] == "https://x"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "company_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"emission_id_extra": uid})

        assert _parse_log(stream)["emission_id_extra"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # INFO is the default level, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", job_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "job_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(company_id="outer")
        with LogContext.bind(company_id="inner"):
            assert LogContext.get_all()["company_id"] == "inner"
        assert LogContext.get_all()["company_id"] == "outer"

    def test_bind_restores_none(self):
        assert "emission_id" not in LogContext.get_all()
        with LogContext.bind(emission_id="temp"):
            assert LogContext.get_all()["emission_id"] == "temp"
        assert "emission_id" not in LogContext.get_all()

    def test_bind_stringifies_and_skips_none(self):
        uid = uuid4()
        with LogContext.bind(correction_event_id=uid, job_id=None):
            ctx = LogContext.get_all()
        assert ctx == {"correction_event_id": str(uid)}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            company_id="t",
            correction_event_id="e",
            emission_id="n",
            job_id="j",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["job_id"] == "j"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        handlers = logging.getLogger("fiscal_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_get_logger_returns_child(self):
        assert get_logger("services.protocol_recovery").name == "fiscal_kernel.services.protocol_recovery"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "fiscal_kernel.deep.nested.module"
