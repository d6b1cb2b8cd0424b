"""
Unit tests for ObservabilityContext.

Tests component wiring, message logging with and without a trace, and
the initialize/shutdown lifecycle.
"""

import threading
from datetime import datetime, timezone

import pytest

from chat_telemetry import ObservabilityContext, TelemetryConfig
from chat_telemetry.events import EventFilter, InMemoryEventStore, MongoEventStore
from chat_telemetry.exceptions import ConfigurationError, EventValidationError
from chat_telemetry.observability import InMemorySink

T0 = datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def context(telemetry_config, sink) -> ObservabilityContext:
    return ObservabilityContext(telemetry_config, sink=sink)


class TestContextWiring:
    """Test construction from configuration."""

    def test_components_share_exporter(self, context):
        assert isinstance(context.store, InMemoryEventStore)
        assert context.metrics.store is context.store
        assert context.logger.service == "test-bot"
        assert context.logger.environment == "test"
        assert context.exporter.stats()["capacity"] == 50

    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            ObservabilityContext(TelemetryConfig(export_buffer_size=0))

    def test_store_override(self, telemetry_config, mock_events_collection):
        store = MongoEventStore(mock_events_collection)
        context = ObservabilityContext(telemetry_config, store=store, sink=InMemorySink())
        assert context.store is store


class TestLogMessage:
    """Test recording conversation turns."""

    @pytest.mark.asyncio
    async def test_log_without_trace(self, context, sink):
        stored = await context.log_message("U1", "S1", "user", "hello there", timestamp=T0)
        context.exporter.drain()

        assert stored.id is not None
        assert await context.store.query(EventFilter(session_id="S1")) == [stored]

        [record] = sink.logs
        assert record["message"] == "message_logged"
        assert record["user_id"] == "U1"
        assert record["role"] == "user"
        assert record["content_length"] == 11
        assert record["content_words"] == 2
        assert "content" not in record
        assert "trace_id" not in record

    @pytest.mark.asyncio
    async def test_log_inside_trace(self, context, sink):
        trace = context.tracer.start_trace("chat.request", user_id="U1")
        stored = await context.log_message("U1", "S1", "assistant", "hi", parent=trace)
        context.tracer.end_trace(trace)
        context.exporter.drain()

        [span] = trace.root.children
        assert span.name == "event_store.append"
        assert span.attributes["event_id"] == stored.id
        assert span.attributes["role"] == "assistant"
        assert not span.is_open

        assert sink.logs[0]["trace_id"] == trace.trace_id
        assert sink.traces[0]["trace_id"] == trace.trace_id

    @pytest.mark.asyncio
    async def test_rejected_message(self, context, sink):
        with pytest.raises(EventValidationError):
            await context.log_message("U1", "", "user", "hi")
        context.exporter.drain()

        assert len(context.store) == 0
        [record] = sink.logs
        assert record["message"] == "message_rejected"
        assert record["level"] == "warning"
        assert record["field_name"] == "session_id"

    @pytest.mark.asyncio
    async def test_long_session_id_without_trace(self, context, sink):
        session_id = "s" * 2000
        stored = await context.log_message("U1", session_id, "user", "hi")
        context.exporter.drain()

        assert stored.session_id == session_id
        assert len(context.store) == 1
        [record] = sink.logs
        assert record["message"] == "message_logged"
        assert record["session_id"] == session_id[:1024]

    @pytest.mark.asyncio
    async def test_long_session_id_inside_trace(self, context, sink):
        session_id = "s" * 2000
        trace = context.tracer.start_trace("chat.request")
        stored = await context.log_message("U1", session_id, "user", "hi", parent=trace)
        context.tracer.end_trace(trace)

        assert stored.session_id == session_id
        assert len(context.store) == 1
        [span] = trace.root.children
        assert span.attributes["session_id"] == session_id[:1024]
        assert "error" not in span.attributes

    @pytest.mark.asyncio
    async def test_rejected_message_with_long_reason(self, context, sink):
        with pytest.raises(EventValidationError) as exc_info:
            await context.log_message("U1", "S1", "x" * 2000, "hi")
        context.exporter.drain()

        assert exc_info.value.field_name == "role"
        assert len(context.store) == 0
        [record] = sink.logs
        assert record["message"] == "message_rejected"
        assert record["field_name"] == "role"
        assert len(record["reason"]) == 1024

    @pytest.mark.asyncio
    async def test_logged_messages_feed_metrics(self, context):
        await context.log_message("U1", "S1", "user", "hi", timestamp=T0)
        await context.log_message("U2", "S2", "user", "hi", timestamp=T0)
        assert await context.metrics.active_users("2024-01-01") == 2
        assert context.collector.get_operation_count("analytics.active_users") == 1


class TestLifecycle:
    """Test initialize and shutdown."""

    @pytest.mark.asyncio
    async def test_async_context_manager(self, telemetry_config, sink):
        async with ObservabilityContext(telemetry_config, sink=sink) as context:
            assert context.initialized
            assert context.exporter.running
            await context.log_message("U1", "S1", "user", "hi")

        assert not context.initialized
        assert not context.exporter.running
        assert len(sink.logs) == 1

    @pytest.mark.asyncio
    async def test_shutdown_runs_off_event_loop_thread(self, context):
        await context.initialize()
        original = context.exporter.shutdown
        threads = []

        def recording_shutdown(*args, **kwargs):
            threads.append(threading.current_thread())
            original(*args, **kwargs)

        context.exporter.shutdown = recording_shutdown
        await context.shutdown()

        [thread] = threads
        assert thread is not threading.current_thread()
        assert not context.exporter.running

    @pytest.mark.asyncio
    async def test_initialize_ensures_mongo_indexes(
        self, telemetry_config, mock_events_collection
    ):
        context = ObservabilityContext(
            telemetry_config, store=MongoEventStore(mock_events_collection), sink=InMemorySink()
        )
        await context.initialize()
        try:
            assert mock_events_collection.create_index.call_count == 3
            await context.initialize()
            assert mock_events_collection.create_index.call_count == 3
        finally:
            await context.shutdown()

    @pytest.mark.asyncio
    async def test_health(self, context):
        await context.initialize()
        try:
            result = await context.health.check_all()
        finally:
            await context.shutdown()
        assert result["status"] == "healthy"
        assert {c["name"] for c in result["checks"]} == {"event_store", "exporter"}
