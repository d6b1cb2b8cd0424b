"""
Observability components.

Provides request tracing, structured logging, the export pipeline,
operation timing and health checks.
"""

from .export import (
    BufferedExporter,
    DropPolicy,
    InMemorySink,
    LoggingSink,
    Sink,
)
from .fields import (
    FieldValue,
    content_metadata,
    truncate_field,
    validate_field,
    validate_fields,
)
from .health import (
    HealthChecker,
    HealthCheckResult,
    HealthStatus,
    check_event_store_health,
    check_exporter_health,
)
from .logging import (
    ContextualLoggerAdapter,
    JsonFormatter,
    LogRecord,
    StructuredLogger,
    configure_logging,
    get_logger,
    get_logging_context,
    log_operation,
)
from .metrics import MetricsCollector, OperationMetrics, timed_operation
from .tracing import Span, Trace, Tracer

__all__ = [
    # Tracing
    "Tracer",
    "Trace",
    "Span",
    # Structured logging
    "StructuredLogger",
    "LogRecord",
    "ContextualLoggerAdapter",
    "JsonFormatter",
    "configure_logging",
    "get_logger",
    "get_logging_context",
    "log_operation",
    # Fields
    "FieldValue",
    "content_metadata",
    "truncate_field",
    "validate_field",
    "validate_fields",
    # Export
    "BufferedExporter",
    "DropPolicy",
    "Sink",
    "InMemorySink",
    "LoggingSink",
    # Metrics
    "MetricsCollector",
    "OperationMetrics",
    "timed_operation",
    # Health
    "HealthStatus",
    "HealthCheckResult",
    "HealthChecker",
    "check_event_store_health",
    "check_exporter_health",
]
