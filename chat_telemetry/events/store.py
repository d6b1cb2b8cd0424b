"""
Abstract Event Store

Defines the append-only store interface for conversation events and an
in-memory implementation. The MongoDB implementation lives in ``mongo.py``.
"""

import bisect
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ..constants import DISTINCT_FIELDS
from ..exceptions import EventValidationError
from .models import EventFilter, MessageEvent, Role, ensure_utc, utc_now

logger = logging.getLogger(__name__)


def build_event(
    user_id: Any,
    session_id: Any,
    role: Any,
    content: Any,
    timestamp: datetime | None = None,
) -> MessageEvent:
    """
    Validate raw ingestion arguments and build a MessageEvent.

    Raises:
        EventValidationError: If a required field is missing, null or malformed
    """
    for name, value in (("user_id", user_id), ("session_id", session_id)):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise EventValidationError(f"{name} is required", field_name=name)
        if not isinstance(value, str):
            raise EventValidationError(
                f"{name} must be a string, got {type(value).__name__}", field_name=name
            )

    if role is None:
        raise EventValidationError("role is required", field_name="role")
    try:
        role = Role(role)
    except ValueError as e:
        raise EventValidationError(
            f"role must be one of {', '.join(r.value for r in Role)}, got {role!r}",
            field_name="role",
        ) from e

    if content is None:
        raise EventValidationError("content must not be null", field_name="content")
    if not isinstance(content, str):
        raise EventValidationError(
            f"content must be a string, got {type(content).__name__}", field_name="content"
        )

    if timestamp is not None and not isinstance(timestamp, datetime):
        raise EventValidationError(
            f"timestamp must be a datetime, got {type(timestamp).__name__}",
            field_name="timestamp",
        )

    return MessageEvent(
        user_id=user_id,
        session_id=session_id,
        role=role,
        content=content,
        timestamp=ensure_utc(timestamp) if timestamp is not None else None,
    )


def validate_event(event: MessageEvent) -> MessageEvent:
    """Re-validate an already constructed event (callers may bypass build_event)."""
    return build_event(
        event.user_id, event.session_id, event.role, event.content, event.timestamp
    )


class EventStore(ABC):
    """
    Append-only store of conversation events.

    Implementations guarantee read-after-write visibility within a single
    instance and must be safe under concurrent appends and queries.

    Example:
        store = InMemoryEventStore()
        await store.append(MessageEvent("u1", "s1", Role.USER, "hi"))
        events = await store.query(EventFilter(session_id="s1"))
    """

    @abstractmethod
    async def append(self, event: MessageEvent) -> MessageEvent:
        """
        Validate and durably record an event.

        A server timestamp is assigned when the event has none.

        Args:
            event: Event to store

        Returns:
            The stored event with ``id`` and ``timestamp`` set

        Raises:
            EventValidationError: If the event is malformed (nothing is stored)
        """
        pass

    @abstractmethod
    async def query(self, filter: EventFilter | None = None) -> list[MessageEvent]:
        """
        Return events matching ``filter`` in ascending timestamp order.

        Args:
            filter: Optional predicates; None matches every event

        Returns:
            List of matching events
        """
        pass

    @abstractmethod
    async def distinct(self, field: str, filter: EventFilter | None = None) -> set[str]:
        """
        Return the distinct values of ``user_id`` or ``session_id``.

        Args:
            field: "user_id" or "session_id"
            filter: Optional predicates

        Returns:
            Set of distinct values among matching events
        """
        pass

    async def ping(self) -> bool:
        """Report whether the store is reachable."""
        return True

    @staticmethod
    def _check_distinct_field(field: str) -> None:
        if field not in DISTINCT_FIELDS:
            raise ValueError(
                f"distinct() supports {', '.join(sorted(DISTINCT_FIELDS))}, got {field!r}"
            )


class InMemoryEventStore(EventStore):
    """
    In-memory event store.

    Keeps events in a list sorted by (timestamp, insertion sequence) under a
    lock. Queries read a snapshot, so they never see a partial append.
    Useful for tests and single-process deployments.
    """

    def __init__(self):
        self._events: list[tuple[datetime, int, MessageEvent]] = []
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)

    async def append(self, event: MessageEvent) -> MessageEvent:
        event = validate_event(event)
        timestamp = event.timestamp or utc_now()
        with self._lock:
            seq = next(self._sequence)
            stored = event.with_server_fields(str(seq), timestamp)
            bisect.insort(self._events, (timestamp, seq, stored))
        logger.debug(f"Appended event id={stored.id} session_id={stored.session_id}")
        return stored

    async def query(self, filter: EventFilter | None = None) -> list[MessageEvent]:
        with self._lock:
            snapshot = list(self._events)
        return [event for _, _, event in snapshot if filter is None or filter.matches(event)]

    async def distinct(self, field: str, filter: EventFilter | None = None) -> set[str]:
        self._check_distinct_field(field)
        return {getattr(event, field) for event in await self.query(filter)}

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def clear(self) -> None:
        """Clear all events (useful for test setup)."""
        with self._lock:
            self._events.clear()
            self._sequence = itertools.count(1)
