"""
CHAT_TELEMETRY - Chatbot observability and engagement analytics

Append-only conversation event log, engagement and retention metrics
computed from it, and per-request tracing with correlated structured logs.
"""

# Analytics
from .analytics import EngagementMetrics, EngagementReport, SessionStats
# Configuration
from .config import TelemetryConfig
# Process context
from .context import ObservabilityContext
# Events
from .events import (EventFilter, EventStore, InMemoryEventStore,
                     MessageEvent, MongoEventStore, Role)
# Errors
from .exceptions import (ChatTelemetryError, ConfigurationError,
                         EventStoreError, EventValidationError, ExportError,
                         FieldPolicyError, SpanStateError)
# Observability
from .observability import (BufferedExporter, LogRecord, Span,
                            StructuredLogger, Trace, Tracer)

__version__ = "0.1.0"

__all__ = [
    # Context
    "ObservabilityContext",
    "TelemetryConfig",
    # Events
    "MessageEvent",
    "Role",
    "EventFilter",
    "EventStore",
    "InMemoryEventStore",
    "MongoEventStore",
    # Analytics
    "EngagementMetrics",
    "EngagementReport",
    "SessionStats",
    # Observability
    "Tracer",
    "Trace",
    "Span",
    "StructuredLogger",
    "LogRecord",
    "BufferedExporter",
    # Errors
    "ChatTelemetryError",
    "EventValidationError",
    "EventStoreError",
    "SpanStateError",
    "FieldPolicyError",
    "ExportError",
    "ConfigurationError",
]
