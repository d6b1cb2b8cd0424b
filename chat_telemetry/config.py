"""
Configuration management for CHAT_TELEMETRY.

Settings are supplied once at process start, either as constructor
arguments or through environment variables. Explicit arguments always win.
"""

import os

from .constants import (
    DEFAULT_DB_NAME,
    DEFAULT_ENVIRONMENT,
    DEFAULT_EVENTS_COLLECTION,
    DEFAULT_EXPORT_BATCH_SIZE,
    DEFAULT_EXPORT_BUFFER_SIZE,
    DEFAULT_EXPORT_MAX_RETRIES,
    DEFAULT_MAX_FIELD_LENGTH,
    DEFAULT_SERVICE_NAME,
)
from .exceptions import ConfigurationError
from .observability.export import DropPolicy


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be an integer", config_key=name, config_value=raw
        ) from e


class TelemetryConfig:
    """
    Chat telemetry configuration.

    Example:
        # Using environment variables
        config = TelemetryConfig()

        # Or using direct parameters
        config = TelemetryConfig(
            service_name="support-bot",
            environment="production",
            mongo_uri="mongodb://localhost:27017",
        )
        config.validate()
    """

    def __init__(
        self,
        service_name: str | None = None,
        environment: str | None = None,
        mongo_uri: str | None = None,
        db_name: str | None = None,
        events_collection: str | None = None,
        max_field_length: int | None = None,
        export_buffer_size: int | None = None,
        export_batch_size: int | None = None,
        export_max_retries: int | None = None,
        export_drop_policy: str | DropPolicy | None = None,
    ):
        """
        Initialize configuration.

        Args:
            service_name: Service tag for log records (TELEMETRY_SERVICE_NAME)
            environment: Environment tag for log records (TELEMETRY_ENVIRONMENT)
            mongo_uri: MongoDB URI; empty selects the in-memory store (MONGO_URI)
            db_name: Database name (DB_NAME)
            events_collection: Collection for message events (EVENTS_COLLECTION)
            max_field_length: Longest allowed string field (TELEMETRY_MAX_FIELD_LENGTH)
            export_buffer_size: Export queue bound (TELEMETRY_EXPORT_BUFFER_SIZE)
            export_batch_size: Items per sink call (TELEMETRY_EXPORT_BATCH_SIZE)
            export_max_retries: Retries per failed batch (TELEMETRY_EXPORT_MAX_RETRIES)
            export_drop_policy: drop_oldest or drop_newest (TELEMETRY_EXPORT_DROP_POLICY)
        """
        self.service_name = service_name or os.getenv(
            "TELEMETRY_SERVICE_NAME", DEFAULT_SERVICE_NAME
        )
        self.environment = environment or os.getenv("TELEMETRY_ENVIRONMENT", DEFAULT_ENVIRONMENT)
        self.mongo_uri = mongo_uri or os.getenv("MONGO_URI", "")
        self.db_name = db_name or os.getenv("DB_NAME", DEFAULT_DB_NAME)
        self.events_collection = events_collection or os.getenv(
            "EVENTS_COLLECTION", DEFAULT_EVENTS_COLLECTION
        )
        self.max_field_length = (
            max_field_length
            if max_field_length is not None
            else _env_int("TELEMETRY_MAX_FIELD_LENGTH", DEFAULT_MAX_FIELD_LENGTH)
        )
        self.export_buffer_size = (
            export_buffer_size
            if export_buffer_size is not None
            else _env_int("TELEMETRY_EXPORT_BUFFER_SIZE", DEFAULT_EXPORT_BUFFER_SIZE)
        )
        self.export_batch_size = (
            export_batch_size
            if export_batch_size is not None
            else _env_int("TELEMETRY_EXPORT_BATCH_SIZE", DEFAULT_EXPORT_BATCH_SIZE)
        )
        self.export_max_retries = (
            export_max_retries
            if export_max_retries is not None
            else _env_int("TELEMETRY_EXPORT_MAX_RETRIES", DEFAULT_EXPORT_MAX_RETRIES)
        )
        raw_policy = export_drop_policy or os.getenv(
            "TELEMETRY_EXPORT_DROP_POLICY", DropPolicy.DROP_OLDEST.value
        )
        self.export_drop_policy = raw_policy

    @property
    def use_mongo(self) -> bool:
        """Whether events are persisted to MongoDB."""
        return bool(self.mongo_uri)

    @property
    def drop_policy(self) -> DropPolicy:
        """Export drop policy as an enum member."""
        return DropPolicy(self.export_drop_policy)

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If a value is missing or out of range
        """
        if not self.service_name:
            raise ConfigurationError("service_name is required", config_key="service_name")

        if not self.environment:
            raise ConfigurationError("environment is required", config_key="environment")

        if self.use_mongo and not self.db_name:
            raise ConfigurationError(
                "db_name is required when mongo_uri is set", config_key="db_name"
            )

        if self.max_field_length < 1:
            raise ConfigurationError(
                f"max_field_length must be >= 1, got {self.max_field_length}",
                config_key="max_field_length",
                config_value=self.max_field_length,
            )

        if self.export_buffer_size < 1:
            raise ConfigurationError(
                f"export_buffer_size must be >= 1, got {self.export_buffer_size}",
                config_key="export_buffer_size",
                config_value=self.export_buffer_size,
            )

        if self.export_batch_size < 1:
            raise ConfigurationError(
                f"export_batch_size must be >= 1, got {self.export_batch_size}",
                config_key="export_batch_size",
                config_value=self.export_batch_size,
            )

        if self.export_batch_size > self.export_buffer_size:
            raise ConfigurationError(
                f"export_batch_size ({self.export_batch_size}) cannot be greater than "
                f"export_buffer_size ({self.export_buffer_size})",
                config_key="export_batch_size",
                config_value=self.export_batch_size,
            )

        if self.export_max_retries < 0:
            raise ConfigurationError(
                f"export_max_retries must be >= 0, got {self.export_max_retries}",
                config_key="export_max_retries",
                config_value=self.export_max_retries,
            )

        try:
            DropPolicy(self.export_drop_policy)
        except ValueError as e:
            raise ConfigurationError(
                f"export_drop_policy must be one of "
                f"{', '.join(p.value for p in DropPolicy)}",
                config_key="export_drop_policy",
                config_value=self.export_drop_policy,
            ) from e
