"""
Request tracing for CHAT_TELEMETRY.

One Trace is created per inbound request. Work done on behalf of the
request opens Spans as children of an explicitly passed parent, so each
sequential path of execution carries its own "current span" and parallel
sub-operations simply open sibling spans from the same parent. Nothing is
read from ambient thread or task state.

When the root span closes, the whole span tree is handed to the exporter
in one piece. Export problems are logged and never reach the caller.
"""

import asyncio
import logging
import threading
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Union

from ..constants import DEFAULT_MAX_FIELD_LENGTH
from ..exceptions import SpanStateError
from .export import BufferedExporter
from .fields import FieldValue, validate_field, validate_fields
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_trace_id() -> str:
    return uuid.uuid4().hex


def new_span_id() -> str:
    return uuid.uuid4().hex[:16]


class Span:
    """
    One timed unit of work inside a trace.

    Spans are created by Tracer.start_span and closed exactly once by
    Tracer.end_span. ``end_time`` is None while the span is open.
    """

    __slots__ = (
        "trace",
        "span_id",
        "parent_span_id",
        "name",
        "start_time",
        "end_time",
        "attributes",
        "children",
    )

    def __init__(
        self,
        trace: "Trace",
        name: str,
        parent: "Span | None" = None,
        attributes: dict[str, FieldValue] | None = None,
        start_time: datetime | None = None,
    ):
        self.trace = trace
        self.span_id = new_span_id()
        self.parent_span_id = parent.span_id if parent else None
        self.name = name
        self.start_time = start_time or _now()
        self.end_time: datetime | None = None
        self.attributes: dict[str, FieldValue] = dict(attributes or {})
        self.children: list[Span] = []

    @property
    def trace_id(self) -> str:
        return self.trace.trace_id

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000

    def iter_tree(self) -> Iterator["Span"]:
        """Depth-first walk over this span and its descendants."""
        yield self
        for child in list(self.children):
            yield from child.iter_tree()

    def to_dict(self) -> dict[str, Any]:
        """Export shape of this span and its subtree."""
        duration = self.duration_ms
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "name": self.name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": round(duration, 3) if duration is not None else None,
            "attributes": dict(self.attributes),
            "children": [child.to_dict() for child in self.children],
        }

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Span {self.name} {self.span_id} {state}>"


class Trace:
    """
    All spans produced while handling one inbound request.

    Attributes:
        trace_id: Globally unique request identifier
        name: Name of the root operation
        attributes: Root attributes (user_id, input size, ...)
        root: Root span, open until the request completes
    """

    def __init__(self, name: str, attributes: dict[str, FieldValue] | None = None):
        self.trace_id = new_trace_id()
        self.name = name
        self.attributes: dict[str, FieldValue] = dict(attributes or {})
        # Guards span registration and closing; parallel sub-operations share it
        self.lock = threading.RLock()
        self.root = Span(self, name, attributes=self.attributes)
        self._spans: dict[str, Span] = {self.root.span_id: self.root}

    @property
    def completed(self) -> bool:
        return not self.root.is_open

    @property
    def spans(self) -> list[Span]:
        with self.lock:
            return list(self._spans.values())

    def get_span(self, span_id: str) -> Span | None:
        with self.lock:
            return self._spans.get(span_id)

    def _register(self, span: Span, parent: Span) -> None:
        self._spans[span.span_id] = span
        parent.children.append(span)

    def to_dict(self) -> dict[str, Any]:
        """Export shape of the whole trace: metadata plus the nested span tree."""
        with self.lock:
            return {
                "trace_id": self.trace_id,
                "name": self.name,
                "attributes": dict(self.attributes),
                "span_count": len(self._spans),
                "root": self.root.to_dict(),
            }


SpanParent = Union[Trace, Span]


class Tracer:
    """
    Creates traces and spans and hands completed traces to the exporter.

    A Tracer is built once per process and shared by reference; per-request
    state lives entirely in the Trace objects it returns.

    Example:
        with tracer.trace("chat.request", user_id=user_id) as trace:
            with tracer.span(trace, "retrieval") as span:
                docs = await retrieve(query)
                tracer.set_attribute(span, "doc_count", len(docs))
            with tracer.span(trace, "llm.generate"):
                reply = await generate(docs)
    """

    def __init__(
        self,
        exporter: BufferedExporter | None = None,
        collector: MetricsCollector | None = None,
        max_attribute_length: int = DEFAULT_MAX_FIELD_LENGTH,
    ):
        self._exporter = exporter
        self._collector = collector
        self._max_attribute_length = max_attribute_length

    # ------------------------------------------------------------------
    # Span lifecycle
    # ------------------------------------------------------------------

    def start_trace(self, name: str, **attributes: Any) -> Trace:
        """Create a trace with an open root span."""
        attributes = validate_fields(attributes, self._max_attribute_length)
        trace = Trace(name, attributes)
        logger.debug(f"Started trace {trace.trace_id} ({name})")
        return trace

    def start_span(self, parent: SpanParent | None, name: str, **attributes: Any) -> Span:
        """
        Open a child span of ``parent``.

        Args:
            parent: A Trace (its root span is used) or an open Span
            name: Operation name
            **attributes: Initial attributes

        Raises:
            SpanStateError: If the parent is missing or already closed
        """
        if parent is None:
            raise SpanStateError(f"Cannot start span {name!r} without a parent", span_name=name)
        parent_span = parent.root if isinstance(parent, Trace) else parent
        if not isinstance(parent_span, Span):
            raise SpanStateError(
                f"Parent of span {name!r} must be a Trace or Span, "
                f"got {type(parent).__name__}",
                span_name=name,
            )
        attributes = validate_fields(attributes, self._max_attribute_length)

        trace = parent_span.trace
        with trace.lock:
            if not parent_span.is_open:
                raise SpanStateError(
                    f"Cannot start span {name!r} under closed parent",
                    span_id=parent_span.span_id,
                    span_name=parent_span.name,
                )
            start_time = max(_now(), parent_span.start_time)
            span = Span(trace, name, parent=parent_span, attributes=attributes, start_time=start_time)
            trace._register(span, parent_span)
        return span

    def set_attribute(self, span: Span, key: str, value: Any) -> None:
        """
        Set one attribute on an open span.

        Raises:
            SpanStateError: If the span is closed
            FieldPolicyError: If the key or value violates the field policy
        """
        value = validate_field(key, value, self._max_attribute_length)
        with span.trace.lock:
            if not span.is_open:
                raise SpanStateError(
                    f"Cannot set attribute {key!r} on closed span",
                    span_id=span.span_id,
                    span_name=span.name,
                )
            span.attributes[key] = value

    def set_attributes(self, span: Span, attributes: Mapping[str, Any]) -> None:
        attributes = validate_fields(attributes, self._max_attribute_length)
        with span.trace.lock:
            if not span.is_open:
                raise SpanStateError(
                    "Cannot set attributes on closed span",
                    span_id=span.span_id,
                    span_name=span.name,
                )
            span.attributes.update(attributes)

    def end_span(self, span: Span, **attributes: Any) -> None:
        """
        Close a span, first closing any descendants still open.

        The end time is never earlier than the span's start or the end of
        any of its children, so child intervals stay nested in the parent.
        Closing the root span completes the trace and exports it.

        Raises:
            SpanStateError: If the span was already closed
        """
        attributes = validate_fields(attributes, self._max_attribute_length)
        trace = span.trace
        with trace.lock:
            if not span.is_open:
                raise SpanStateError(
                    "Span already closed", span_id=span.span_id, span_name=span.name
                )
            span.attributes.update(attributes)
            self._close(span, _now())

        if span.is_root:
            self._complete(trace)

    def end_trace(self, trace: Trace, **attributes: Any) -> None:
        """Close the root span of ``trace``."""
        self.end_span(trace.root, **attributes)

    def _close(self, span: Span, now: datetime) -> None:
        latest = max(now, span.start_time)
        for child in span.children:
            if child.is_open:
                child.attributes["span.force_closed"] = True
                logger.warning(
                    f"Span {child.name} ({child.span_id}) still open when parent "
                    f"{span.name} closed; closing it"
                )
                self._close(child, now)
            latest = max(latest, child.end_time)
        span.end_time = latest

        if self._collector is not None:
            self._collector.record_operation(
                f"span.{span.name}",
                span.duration_ms,
                success=not span.attributes.get("error", False),
            )

    def _complete(self, trace: Trace) -> None:
        logger.debug(f"Trace {trace.trace_id} completed with {len(trace.spans)} spans")
        if self._exporter is None:
            return
        try:
            self._exporter.submit_trace(trace.to_dict())
        except Exception:
            # Export must never affect the traced request
            logger.exception(f"Failed to submit trace {trace.trace_id} for export")

    # ------------------------------------------------------------------
    # Context managers
    # ------------------------------------------------------------------

    def _mark_failure(self, span: Span, error: BaseException) -> None:
        with span.trace.lock:
            if not span.is_open:
                return
            if isinstance(error, asyncio.CancelledError):
                span.attributes["cancelled"] = True
            else:
                span.attributes["error"] = True
                span.attributes["error.type"] = type(error).__name__

    def _close_quietly(self, span: Span) -> None:
        # Check and close under one hold of the trace lock; an ancestor closing
        # on another thread must not slip in between
        with span.trace.lock:
            if span.is_open:
                self.end_span(span)

    @contextmanager
    def span(self, parent: SpanParent | None, name: str, **attributes: Any) -> Iterator[Span]:
        """
        Open a child span for the duration of a block.

        The span is always closed. Exceptions set ``error``/``error.type``,
        cancellation sets ``cancelled``; both are re-raised.
        """
        span = self.start_span(parent, name, **attributes)
        try:
            yield span
        except (Exception, asyncio.CancelledError) as e:
            self._mark_failure(span, e)
            raise
        finally:
            self._close_quietly(span)

    @contextmanager
    def trace(self, name: str, **attributes: Any) -> Iterator[Trace]:
        """Run a block as a whole trace; the root span closes on exit."""
        trace = self.start_trace(name, **attributes)
        try:
            yield trace
        except (Exception, asyncio.CancelledError) as e:
            self._mark_failure(trace.root, e)
            raise
        finally:
            self._close_quietly(trace.root)
