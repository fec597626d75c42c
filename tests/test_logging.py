"""Tests for the structured logging system (fieldrep_kernel/logging_config.py)."""

import io
import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from fieldrep_kernel.exceptions import ForbiddenError, ValidationError
from fieldrep_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=io.StringIO())


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
        assert record["logger"] == "fieldrep.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("sheet_validated", extra={"count": 3, "outcome": "success"})

        record = _parse_log(stream)
        assert record["count"] == 3
        assert record["outcome"] == "success"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(actor_id="u1", actor_role="representative", entity_type="visit_report")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["actor_id"] == "u1"
        assert record["actor_role"] == "representative"
        assert record["entity_type"] == "visit_report"

    def test_forbidden_error_fields_flattened(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ForbiddenError("close", "role 'accountant' may not close", actor_id="acc1")
        except ForbiddenError:
            get_logger("test").error("refused", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "FORBIDDEN"
        assert record["exc_type"] == "ForbiddenError"
        assert record["exc_operation"] == "close"
        assert record["exc_actor_id"] == "acc1"
        assert "traceback" in record

    def test_validation_error_serializes(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValidationError.single("narrative_min_length", "narrative", "too short")
        except ValidationError:
            get_logger("test").warning("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "VALIDATION_FAILED"
        assert record["exc_rule"] == "narrative_min_length"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "actor_id" not in record
        assert "entity_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"sheet_id": uid})

        assert _parse_log(stream)["sheet_id"] == str(uid)

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", entity_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "entity_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(entity_id="outer")
        with LogContext.bind(entity_id="inner"):
            assert LogContext.get_all()["entity_id"] == "inner"
        assert LogContext.get_all()["entity_id"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(actor_id="temp"):
            assert LogContext.get_all()["actor_id"] == "temp"
        assert "actor_id" not in LogContext.get_all()

    def test_bind_ignores_none_values(self):
        with LogContext.bind(actor_id=None, entity_type="expense_sheet"):
            assert LogContext.get_all() == {"entity_type": "expense_sheet"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="sheet_total"):
            LogContext.set(sheet_total="17.30")

    def test_bind_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(region_id="north"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)

        handlers = logging.getLogger("fieldrep").handlers
        assert h1 in handlers
        assert h2 not in handlers
        assert [h for h in handlers if isinstance(h.formatter, StructuredFormatter)] == [h1]

    def test_get_logger_returns_child(self):
        assert get_logger("services.approval").name == "fieldrep.services.approval"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "fieldrep.deep.nested.module"
