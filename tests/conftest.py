"""
Pytest configuration and shared fixtures for CHAT_TELEMETRY tests.

This module provides:
- Event store fixtures (in-memory and mocked Motor collection)
- Tracing, logging and export fixtures wired to an in-memory sink
- Test data factories
"""

from datetime import datetime
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import AsyncIOMotorCollection

from chat_telemetry.analytics import EngagementMetrics
from chat_telemetry.config import TelemetryConfig
from chat_telemetry.events import InMemoryEventStore
from chat_telemetry.observability import (BufferedExporter, InMemorySink,
                                          MetricsCollector, StructuredLogger,
                                          Tracer)

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that need a real MongoDB (Docker)")


# ============================================================================
# EVENT STORE FIXTURES
# ============================================================================


@pytest.fixture
def store() -> InMemoryEventStore:
    """Provide an empty in-memory event store."""
    return InMemoryEventStore()


@pytest.fixture
def metrics(store: InMemoryEventStore) -> EngagementMetrics:
    """Provide a metrics engine over the in-memory store."""
    return EngagementMetrics(store)


@pytest.fixture
def mock_events_collection() -> MagicMock:
    """Create a mock Motor collection for message events."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = "message_events"
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="65a000000000000000000001"))
    cursor = MagicMock()
    cursor.sort = MagicMock(return_value=cursor)
    cursor.to_list = AsyncMock(return_value=[])
    collection.find = MagicMock(return_value=cursor)
    collection.distinct = AsyncMock(return_value=[])
    collection.create_index = AsyncMock(side_effect=lambda keys, name=None: name)
    collection.database = MagicMock()
    collection.database.client.admin.command = AsyncMock(return_value={"ok": 1})
    return collection


# ============================================================================
# OBSERVABILITY FIXTURES
# ============================================================================


@pytest.fixture
def sink() -> InMemorySink:
    """Provide a sink that keeps exported items in memory."""
    return InMemorySink()


@pytest.fixture
def exporter(sink: InMemorySink) -> BufferedExporter:
    """Provide an exporter without a worker thread (drain manually)."""
    return BufferedExporter(sink, max_buffer_size=100, batch_size=10, retry_backoff_seconds=0)


@pytest.fixture
def collector() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def tracer(exporter: BufferedExporter, collector: MetricsCollector) -> Tracer:
    """Provide a tracer exporting to the in-memory sink."""
    return Tracer(exporter=exporter, collector=collector)


@pytest.fixture
def structured_logger(exporter: BufferedExporter) -> StructuredLogger:
    """Provide a structured logger exporting to the in-memory sink."""
    return StructuredLogger(
        service="test-bot", environment="test", exporter=exporter, max_field_length=64
    )


@pytest.fixture
def telemetry_config() -> TelemetryConfig:
    """Provide an in-memory configuration for tests."""
    return TelemetryConfig(
        service_name="test-bot",
        environment="test",
        mongo_uri="",
        export_buffer_size=50,
        export_batch_size=10,
        export_max_retries=0,
    )


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================


@pytest.fixture
def sample_event_document() -> Dict[str, Any]:
    """Provide a stored event document as MongoDB returns it."""
    return {
        "_id": "65a000000000000000000001",
        "user_id": "U1",
        "session_id": "S1",
        "role": "user",
        "content": "hi",
        "timestamp": datetime(2024, 1, 1, 9, 0, 0),
    }


# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Reset environment variables before each test."""
    env_vars_to_clear = [
        "MONGO_URI",
        "DB_NAME",
        "EVENTS_COLLECTION",
        "TELEMETRY_SERVICE_NAME",
        "TELEMETRY_ENVIRONMENT",
        "TELEMETRY_MAX_FIELD_LENGTH",
        "TELEMETRY_EXPORT_BUFFER_SIZE",
        "TELEMETRY_EXPORT_BATCH_SIZE",
        "TELEMETRY_EXPORT_MAX_RETRIES",
        "TELEMETRY_EXPORT_DROP_POLICY",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    yield


# ============================================================================
# TESTCONTAINERS FIXTURES (Real MongoDB for Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def mongodb_container():
    """
    Start a MongoDB container for integration tests.

    Session-scoped: container starts once and is reused for all integration tests.
    """
    try:
        from testcontainers.mongodb import MongoDbContainer
    except ImportError:
        pytest.skip("testcontainers not installed. Install with: pip install -e '.[test]'")

    with MongoDbContainer(image="mongo:7") as container:
        yield container


@pytest.fixture
def mongodb_connection_string(mongodb_container) -> str:
    """Connection string for the test container."""
    return mongodb_container.get_connection_url()
