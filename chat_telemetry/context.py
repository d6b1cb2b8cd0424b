"""
Process-wide observability context.

ObservabilityContext is constructed once per process and handed by
reference to request handlers. It owns the event store, the metrics
engine, the tracer, the structured logger and the export pipeline; the
only shared mutable state across requests is the event store and the
export buffer, both of which are safe for concurrent use.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

from .analytics.engine import EngagementMetrics
from .config import TelemetryConfig
from .events.models import MessageEvent
from .events.mongo import MongoEventStore, create_event_store
from .events.store import EventStore, build_event
from .exceptions import EventValidationError, FieldPolicyError
from .observability.export import BufferedExporter, LoggingSink, Sink
from .observability.fields import content_metadata, truncate_field
from .observability.health import (
    HealthChecker,
    check_event_store_health,
    check_exporter_health,
)
from .observability.logging import StructuredLogger
from .observability.metrics import MetricsCollector
from .observability.tracing import SpanParent, Tracer

logger = logging.getLogger(__name__)


class ObservabilityContext:
    """
    Owns every telemetry component for one process.

    Example:
        context = ObservabilityContext(TelemetryConfig())
        await context.initialize()

        with context.tracer.trace("chat.request", user_id=user_id) as trace:
            await context.log_message(user_id, session_id, "user", text, parent=trace)
            ...

        await context.shutdown()
    """

    def __init__(
        self,
        config: TelemetryConfig | None = None,
        store: EventStore | None = None,
        sink: Sink | None = None,
    ):
        """
        Args:
            config: Settings (read from the environment when None)
            store: Event store override (built from config when None)
            sink: Export destination (LoggingSink when None)
        """
        self.config = config or TelemetryConfig()
        self.config.validate()

        self.collector = MetricsCollector()
        self.exporter = BufferedExporter(
            sink if sink is not None else LoggingSink(),
            max_buffer_size=self.config.export_buffer_size,
            batch_size=self.config.export_batch_size,
            max_retries=self.config.export_max_retries,
            drop_policy=self.config.drop_policy,
        )
        self.store = store if store is not None else create_event_store(self.config)
        self.metrics = EngagementMetrics(self.store, collector=self.collector)
        self.tracer = Tracer(
            exporter=self.exporter,
            collector=self.collector,
            max_attribute_length=self.config.max_field_length,
        )
        self.logger = StructuredLogger(
            service=self.config.service_name,
            environment=self.config.environment,
            exporter=self.exporter,
            max_field_length=self.config.max_field_length,
        )
        self.health = HealthChecker()
        self.health.register_check(self._store_health)
        self.health.register_check(self._exporter_health)
        self._initialized = False

    async def _store_health(self):
        return await check_event_store_health(self.store)

    async def _exporter_health(self):
        return await check_exporter_health(self.exporter)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Start the export worker and prepare storage indexes."""
        if self._initialized:
            return
        self.exporter.start()
        if isinstance(self.store, MongoEventStore):
            await self.store.ensure_indexes()
        self._initialized = True
        logger.info(
            f"Observability context ready service={self.config.service_name} "
            f"environment={self.config.environment} store={type(self.store).__name__}"
        )

    async def shutdown(self) -> None:
        """Flush pending telemetry and stop the export worker."""
        # Joining the worker blocks, keep it off the event loop
        await asyncio.to_thread(self.exporter.shutdown)
        self._initialized = False
        logger.info("Observability context shut down")

    async def __aenter__(self) -> "ObservabilityContext":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    async def log_message(
        self,
        user_id: Any,
        session_id: Any,
        role: Any,
        content: Any,
        timestamp: datetime | None = None,
        parent: SpanParent | None = None,
    ) -> MessageEvent:
        """
        Record one conversation turn.

        Appends the event to the store and emits a ``message_logged`` record
        carrying only content size metadata. When ``parent`` is given the
        append runs inside an ``event_store.append`` span. Identifiers longer
        than ``max_field_length`` are stored in full but truncated in log
        records and span attributes.

        Raises:
            EventValidationError: If the event is malformed (nothing is stored)
        """
        trace_id = parent.trace_id if parent is not None else None
        try:
            event = build_event(user_id, session_id, role, content, timestamp)
        except EventValidationError as e:
            self._emit_quietly(
                "warning",
                "message_rejected",
                {
                    "field_name": self._bounded(e.field_name),
                    "reason": self._bounded(e.message),
                },
                trace_id,
            )
            raise

        if parent is not None:
            with self.tracer.span(
                parent,
                "event_store.append",
                session_id=self._bounded(event.session_id),
                role=event.role.value,
            ) as span:
                stored = await self.store.append(event)
                self.tracer.set_attribute(span, "event_id", self._bounded(stored.id))
        else:
            stored = await self.store.append(event)

        self._emit_quietly(
            "info",
            "message_logged",
            {
                "user_id": self._bounded(stored.user_id),
                "session_id": self._bounded(stored.session_id),
                "role": stored.role.value,
                **content_metadata(stored.content),
            },
            trace_id,
        )
        return stored

    def _bounded(self, value: Any) -> Any:
        # Identifiers are caller-supplied and unbounded; records carry a prefix
        return truncate_field(value, self.config.max_field_length)

    def _emit_quietly(
        self, level: str, event_name: str, fields: dict[str, Any], trace_id: str | None
    ) -> None:
        # The event is already stored (or its rejection is being raised);
        # a record that fails the field policy must not change that outcome
        try:
            self.logger.emit(event_name, fields, trace_id=trace_id, level=level)
        except FieldPolicyError:
            logger.exception(f"Dropped {event_name} record that violated the field policy")
