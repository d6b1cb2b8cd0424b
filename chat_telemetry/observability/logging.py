"""
Structured logging for CHAT_TELEMETRY.

Two layers live here:

- StructuredLogger emits immutable, field-typed LogRecords tagged with the
  service and environment and, optionally, a trace_id. Records are handed to
  the exporter without blocking.
- get_logger / ContextualLoggerAdapter / log_operation keep ordinary stdlib
  logging correlated with a trace by binding its trace_id explicitly.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from ..constants import (
    DEFAULT_ENVIRONMENT,
    DEFAULT_MAX_FIELD_LENGTH,
    DEFAULT_SERVICE_NAME,
    LOG_LEVELS,
    RESERVED_LOG_KEYS,
)
from .export import BufferedExporter
from .fields import FieldValue, validate_fields

logger = logging.getLogger(__name__)

_STDLIB_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


@dataclass(frozen=True)
class LogRecord:
    """One structured observability entry. Immutable once emitted."""

    timestamp: datetime
    level: str
    event_name: str
    service: str
    environment: str
    trace_id: str | None = None
    fields: Mapping[str, FieldValue] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> dict[str, Any]:
        """Wire shape handed to the exporter."""
        data: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.event_name,
            "service": self.service,
            "environment": self.environment,
        }
        if self.trace_id:
            data["trace_id"] = self.trace_id
        data.update(self.fields)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredLogger:
    """
    Emits LogRecords with fixed service/environment tags.

    Field values must be scalars and strings are bounded by
    ``max_field_length``; message bodies belong in the event store, and only
    their size (see ``content_metadata``) should be logged.

    Example:
        log = StructuredLogger("support-bot", "production", exporter)
        log.info("retrieval_done", {"doc_count": 4}, trace_id=trace.trace_id)
    """

    def __init__(
        self,
        service: str = DEFAULT_SERVICE_NAME,
        environment: str = DEFAULT_ENVIRONMENT,
        exporter: BufferedExporter | None = None,
        max_field_length: int = DEFAULT_MAX_FIELD_LENGTH,
        mirror_to_stdlib: bool = False,
    ):
        """
        Args:
            service: Service tag on every record
            environment: Environment tag on every record
            exporter: Destination for emitted records (None keeps them local)
            max_field_length: Longest allowed string field value
            mirror_to_stdlib: Also write each record to this module's stdlib logger
        """
        self._service = service
        self._environment = environment
        self._exporter = exporter
        self._max_field_length = max_field_length
        self._mirror_to_stdlib = mirror_to_stdlib

    @property
    def service(self) -> str:
        return self._service

    @property
    def environment(self) -> str:
        return self._environment

    def emit(
        self,
        event_name: str,
        fields: Mapping[str, Any] | None = None,
        trace_id: str | None = None,
        level: str = "info",
    ) -> LogRecord:
        """
        Build one LogRecord and hand it to the exporter.

        Raises:
            ValueError: If the level or event name is invalid
            FieldPolicyError: If a field is oversized, non-scalar or reserved
        """
        level = level.lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
        if not event_name:
            raise ValueError("event_name is required")

        validated = validate_fields(fields, self._max_field_length, reserved=RESERVED_LOG_KEYS)
        record = LogRecord(
            timestamp=datetime.now(timezone.utc),
            level=level,
            event_name=event_name,
            service=self._service,
            environment=self._environment,
            trace_id=trace_id,
            fields=MappingProxyType(validated),
        )

        if self._mirror_to_stdlib:
            logger.log(_STDLIB_LEVELS[level], event_name, extra={"telemetry": record.to_dict()})

        if self._exporter is not None:
            try:
                self._exporter.submit_log(record.to_dict())
            except Exception:
                # Emission never fails the caller because of the sink
                logger.exception(f"Failed to submit log record {event_name} for export")
        return record

    def debug(self, event_name: str, fields: Mapping[str, Any] | None = None, **kw) -> LogRecord:
        return self.emit(event_name, fields, level="debug", **kw)

    def info(self, event_name: str, fields: Mapping[str, Any] | None = None, **kw) -> LogRecord:
        return self.emit(event_name, fields, level="info", **kw)

    def warning(self, event_name: str, fields: Mapping[str, Any] | None = None, **kw) -> LogRecord:
        return self.emit(event_name, fields, level="warning", **kw)

    def error(self, event_name: str, fields: Mapping[str, Any] | None = None, **kw) -> LogRecord:
        return self.emit(event_name, fields, level="error", **kw)


# ============================================================================
# STDLIB LOGGING INTEGRATION
# ============================================================================


def get_logging_context(trace_id: str | None = None, **context: Any) -> dict[str, Any]:
    """
    Build the context dict attached to stdlib log calls.

    Returns:
        Dictionary with a timestamp, the trace_id when given, and ``context``
    """
    log_context: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if trace_id:
        log_context["trace_id"] = trace_id
    log_context.update(context)
    return log_context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds a bound trace_id and context to every record.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = get_logging_context(**self.extra)
        extra = kwargs.get("extra", {})
        if extra:
            context.update(extra)
        kwargs["extra"] = context
        return msg, kwargs

    def bind(self, **context: Any) -> "ContextualLoggerAdapter":
        """Return a new adapter with additional bound context."""
        return ContextualLoggerAdapter(self.logger, {**self.extra, **context})


def get_logger(name: str, trace_id: str | None = None, **context: Any) -> ContextualLoggerAdapter:
    """
    Get a stdlib logger bound to a trace.

    Args:
        name: Logger name (typically __name__)
        trace_id: Trace to correlate with (optional)
        **context: Additional bound context (session_id, ...)

    Returns:
        ContextualLoggerAdapter instance
    """
    bound = dict(context)
    if trace_id:
        bound["trace_id"] = trace_id
    return ContextualLoggerAdapter(logging.getLogger(name), bound)


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    level: int = logging.INFO,
    success: bool = True,
    duration_ms: float | None = None,
    trace_id: str | None = None,
    **context: Any,
) -> None:
    """
    Log an operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name
        level: Log level
        success: Whether operation succeeded
        duration_ms: Operation duration in milliseconds
        trace_id: Trace to correlate with
        **context: Additional context
    """
    log_context = get_logging_context(trace_id, operation=operation, success=success)
    if duration_ms is not None:
        log_context["duration_ms"] = round(duration_ms, 2)
    if context:
        log_context.update(context)

    message = f"Operation: {operation}"
    if not success:
        message = f"Operation failed: {operation}"
    if duration_ms is not None:
        message += f" (duration: {duration_ms:.2f}ms)"

    logger.log(level, message, extra=log_context)


class JsonFormatter(logging.Formatter):
    """Render stdlib log records as single-line JSON."""

    _SKIP = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in self._SKIP:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: int = logging.INFO, json_format: bool = True) -> logging.Logger:
    """
    Install a stream handler on the ``chat_telemetry`` package logger.

    Idempotent: an existing handler installed by this function is replaced.
    """
    package_logger = logging.getLogger("chat_telemetry")
    package_logger.setLevel(level)
    for handler in list(package_logger.handlers):
        if getattr(handler, "_chat_telemetry", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._chat_telemetry = True
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    package_logger.addHandler(handler)
    return package_logger
