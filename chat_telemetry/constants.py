"""
Constants for CHAT_TELEMETRY.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# EVENT STORE CONSTANTS
# ============================================================================

DEFAULT_DB_NAME: Final[str] = "chat_telemetry"
"""Default MongoDB database name for conversation events."""

DEFAULT_EVENTS_COLLECTION: Final[str] = "message_events"
"""Default MongoDB collection holding message events."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DISTINCT_FIELDS: Final[frozenset] = frozenset({"user_id", "session_id"})
"""Event fields that support distinct-value queries."""

# ============================================================================
# ANALYTICS CONSTANTS
# ============================================================================

WEEKLY_WINDOW_DAYS: Final[int] = 7
"""Window length (days, inclusive of the reference day) for WAU."""

MONTHLY_WINDOW_DAYS: Final[int] = 30
"""Window length (days, inclusive of the reference day) for MAU."""

# ============================================================================
# TRACING / LOGGING CONSTANTS
# ============================================================================

DEFAULT_SERVICE_NAME: Final[str] = "chatbot"
"""Service tag attached to every log record."""

DEFAULT_ENVIRONMENT: Final[str] = "development"
"""Environment tag attached to every log record."""

DEFAULT_MAX_FIELD_LENGTH: Final[int] = 1024
"""Maximum length of a string log field or span attribute value."""

MAX_FIELD_KEY_LENGTH: Final[int] = 128
"""Maximum length of a log field or span attribute key."""

RESERVED_LOG_KEYS: Final[frozenset] = frozenset(
    {"timestamp", "level", "message", "service", "environment", "trace_id"}
)
"""Wire keys a caller-supplied log field may not overwrite."""

LOG_LEVELS: Final[tuple] = ("debug", "info", "warning", "error", "critical")
"""Levels accepted by the structured logger."""

# ============================================================================
# EXPORT CONSTANTS
# ============================================================================

DEFAULT_EXPORT_BUFFER_SIZE: Final[int] = 1000
"""Maximum number of items queued for export before dropping."""

DEFAULT_EXPORT_BATCH_SIZE: Final[int] = 100
"""Maximum number of items handed to a sink in one call."""

DEFAULT_EXPORT_MAX_RETRIES: Final[int] = 3
"""Retries for a failed export batch before it is dropped."""

DEFAULT_EXPORT_RETRY_BACKOFF_SECONDS: Final[float] = 0.5
"""Linear backoff step between export retries (seconds)."""

DEFAULT_EXPORT_FLUSH_INTERVAL_SECONDS: Final[float] = 1.0
"""Maximum time the export worker waits before draining a partial batch."""

EXPORT_BUFFER_DEGRADED_PERCENT: Final[float] = 80.0
"""Buffer usage above which the exporter reports as degraded."""

EXPORT_BUFFER_UNHEALTHY_PERCENT: Final[float] = 90.0
"""Buffer usage above which the exporter reports as unhealthy."""

# ============================================================================
# METRICS COLLECTOR CONSTANTS
# ============================================================================

DEFAULT_MAX_OPERATION_METRICS: Final[int] = 10000
"""Maximum number of distinct operation keys tracked before LRU eviction."""
