"""
Unit tests for structured logging.

Tests the LogRecord wire shape, the field policy, and the stdlib
logging helpers used for trace-correlated diagnostics.
"""

import json
import logging

import pytest

from chat_telemetry.exceptions import FieldPolicyError
from chat_telemetry.observability import (ContextualLoggerAdapter,
                                          JsonFormatter, StructuredLogger,
                                          configure_logging, content_metadata,
                                          get_logger, get_logging_context,
                                          log_operation, truncate_field)


class TestStructuredLogger:
    """Test record emission."""

    def test_wire_shape(self, structured_logger, exporter, sink):
        record = structured_logger.info("retrieval_done", {"doc_count": 4}, trace_id="abc123")
        exporter.drain()

        assert sink.logs == [record.to_dict()]
        data = sink.logs[0]
        assert data["message"] == "retrieval_done"
        assert data["level"] == "info"
        assert data["service"] == "test-bot"
        assert data["environment"] == "test"
        assert data["trace_id"] == "abc123"
        assert data["doc_count"] == 4
        assert "timestamp" in data

    def test_trace_id_omitted_when_absent(self, structured_logger):
        record = structured_logger.warning("no_trace")
        assert "trace_id" not in record.to_dict()
        assert record.level == "warning"

    def test_level_helpers(self, structured_logger):
        assert structured_logger.debug("a").level == "debug"
        assert structured_logger.error("b").level == "error"
        assert structured_logger.emit("c", level="CRITICAL").level == "critical"

    def test_invalid_level(self, structured_logger):
        with pytest.raises(ValueError):
            structured_logger.emit("event", level="verbose")

    def test_empty_event_name(self, structured_logger):
        with pytest.raises(ValueError):
            structured_logger.info("")

    def test_record_is_immutable(self, structured_logger):
        record = structured_logger.info("event", {"count": 1})
        with pytest.raises(AttributeError):
            record.level = "error"
        with pytest.raises(TypeError):
            record.fields["count"] = 2

    def test_to_json(self, structured_logger):
        record = structured_logger.info("event", {"ok": True})
        assert json.loads(record.to_json())["ok"] is True

    def test_without_exporter(self):
        log = StructuredLogger("svc", "dev")
        assert log.info("event").service == "svc"


class TestFieldPolicy:
    """Test rejection of oversized, non-scalar and reserved fields."""

    def test_oversized_value_rejected(self, structured_logger, exporter, sink):
        with pytest.raises(FieldPolicyError) as exc_info:
            structured_logger.info("message_logged", {"content": "x" * 65})
        assert exc_info.value.field_name == "content"
        exporter.drain()
        assert sink.logs == []

    def test_value_at_limit_accepted(self, structured_logger):
        record = structured_logger.info("event", {"note": "x" * 64})
        assert record.fields["note"] == "x" * 64

    def test_non_scalar_rejected(self, structured_logger):
        with pytest.raises(FieldPolicyError):
            structured_logger.info("event", {"docs": ["a", "b"]})
        with pytest.raises(FieldPolicyError):
            structured_logger.info("event", {"meta": {"nested": 1}})

    @pytest.mark.parametrize("key", ["timestamp", "level", "message", "service", "trace_id"])
    def test_reserved_keys_rejected(self, structured_logger, key):
        with pytest.raises(FieldPolicyError) as exc_info:
            structured_logger.info("event", {key: "override"})
        assert exc_info.value.field_name == key

    def test_content_metadata(self, structured_logger):
        fields = content_metadata("how do I reset my password")
        assert fields == {"content_length": 26, "content_words": 6}
        record = structured_logger.info("message_logged", fields)
        assert record.fields["content_length"] == 26

    def test_content_metadata_empty(self):
        assert content_metadata(None, prefix="reply") == {"reply_length": 0, "reply_words": 0}

    def test_truncated_value_passes_policy(self, structured_logger):
        value = truncate_field("u" * 2000, 64)
        assert len(value) == 64
        record = structured_logger.info("message_logged", {"session_id": value})
        assert record.fields["session_id"] == value

    def test_truncate_leaves_short_and_non_string_values(self):
        assert truncate_field("U1", 1024) == "U1"
        assert truncate_field(42, 1) == 42
        assert truncate_field(None, 1) is None


class TestStdlibLogging:
    """Test trace-correlated stdlib logging helpers."""

    def test_get_logging_context(self):
        context = get_logging_context("abc", session_id="S1")
        assert context["trace_id"] == "abc"
        assert context["session_id"] == "S1"
        assert "timestamp" in context

    def test_get_logging_context_without_trace(self):
        assert "trace_id" not in get_logging_context()

    def test_get_logger_binds_trace(self, caplog):
        log = get_logger("chat_telemetry.tests", trace_id="abc", session_id="S1")
        assert isinstance(log, ContextualLoggerAdapter)

        with caplog.at_level(logging.INFO, logger="chat_telemetry.tests"):
            log.info("retrieval finished", extra={"doc_count": 3})

        record = caplog.records[-1]
        assert record.trace_id == "abc"
        assert record.session_id == "S1"
        assert record.doc_count == 3

    def test_bind_adds_context(self, caplog):
        log = get_logger("chat_telemetry.tests", trace_id="abc").bind(user_id="U1")

        with caplog.at_level(logging.INFO, logger="chat_telemetry.tests"):
            log.info("bound")

        assert caplog.records[-1].user_id == "U1"
        assert caplog.records[-1].trace_id == "abc"

    def test_log_operation(self, caplog):
        log = logging.getLogger("chat_telemetry.tests")

        with caplog.at_level(logging.INFO, logger="chat_telemetry.tests"):
            log_operation(log, "retention", success=False, duration_ms=12.345, trace_id="abc")

        record = caplog.records[-1]
        assert record.getMessage() == "Operation failed: retention (duration: 12.35ms)"
        assert record.duration_ms == 12.35
        assert record.success is False

    def test_json_formatter(self):
        record = logging.makeLogRecord(
            {"name": "chat_telemetry.x", "levelname": "INFO", "msg": "hello %s", "args": ("bob",)}
        )
        record.trace_id = "abc"

        payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == "hello bob"
        assert payload["level"] == "info"
        assert payload["logger"] == "chat_telemetry.x"
        assert payload["trace_id"] == "abc"
        assert "args" not in payload

    def test_configure_logging_idempotent(self):
        package_logger = configure_logging(logging.DEBUG)
        configure_logging(logging.DEBUG, json_format=False)
        try:
            installed = [h for h in package_logger.handlers if getattr(h, "_chat_telemetry", False)]
            assert len(installed) == 1
            assert package_logger.level == logging.DEBUG
        finally:
            for handler in installed:
                package_logger.removeHandler(handler)
            package_logger.setLevel(logging.NOTSET)

    def test_mirror_to_stdlib(self, caplog):
        log = StructuredLogger("svc", "dev", mirror_to_stdlib=True)

        with caplog.at_level(logging.INFO, logger="chat_telemetry.observability.logging"):
            log.info("chat_started", {"user_id": "U1"})

        record = caplog.records[-1]
        assert record.getMessage() == "chat_started"
        assert record.telemetry["user_id"] == "U1"
