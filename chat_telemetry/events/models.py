"""
Event model for conversation turns.

A MessageEvent is one turn of a conversation and the only thing the
telemetry layer ever writes. Sessions, cohorts and reports are derived from
these rows at read time.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any

from bson import ObjectId


class Role(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Current server time in UTC."""
    return datetime.now(timezone.utc)


def day_start(day: date) -> datetime:
    """Midnight UTC at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


@dataclass(frozen=True)
class MessageEvent:
    """
    One stored conversation turn.

    Instances are immutable; the store hands back a copy with ``id`` and
    ``timestamp`` filled in.
    """

    user_id: str
    session_id: str
    role: Role
    content: str
    timestamp: datetime | None = None
    id: str | None = None

    @property
    def day(self) -> date:
        """UTC calendar date of the event."""
        return ensure_utc(self.timestamp).date()

    def with_server_fields(self, event_id: str, timestamp: datetime) -> "MessageEvent":
        return replace(self, id=event_id, timestamp=timestamp)

    def to_document(self) -> dict[str, Any]:
        """Convert the event to a MongoDB document (without ``_id``)."""
        return {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "MessageEvent":
        """Create an event from a MongoDB document."""
        raw_id = doc.get("_id")
        timestamp = doc.get("timestamp")
        return cls(
            id=str(raw_id) if isinstance(raw_id, ObjectId) else raw_id,
            user_id=doc["user_id"],
            session_id=doc["session_id"],
            role=Role(doc["role"]),
            content=doc.get("content", ""),
            timestamp=ensure_utc(timestamp) if timestamp is not None else None,
        )


@dataclass(frozen=True)
class EventFilter:
    """
    Conjunction of optional predicates over message events.

    ``start`` is inclusive and ``end`` exclusive. ``user_ids`` and
    ``session_ids`` are set-membership predicates.

    Example:
        EventFilter(session_id="s-1")
        EventFilter.for_dates(date(2024, 1, 1), date(2024, 1, 7))
        EventFilter.for_day(day, user_ids=cohort)
    """

    start: datetime | None = None
    end: datetime | None = None
    user_id: str | None = None
    session_id: str | None = None
    user_ids: frozenset[str] | None = field(default=None)
    session_ids: frozenset[str] | None = field(default=None)

    def __post_init__(self):
        # Normalise bounds and membership sets so filters compare and hash cleanly
        if self.start is not None:
            object.__setattr__(self, "start", ensure_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", ensure_utc(self.end))
        if self.user_ids is not None:
            object.__setattr__(self, "user_ids", frozenset(self.user_ids))
        if self.session_ids is not None:
            object.__setattr__(self, "session_ids", frozenset(self.session_ids))

    @classmethod
    def for_dates(cls, start_date: date, end_date: date, **predicates: Any) -> "EventFilter":
        """Filter for the inclusive calendar range ``[start_date, end_date]`` (UTC)."""
        return cls(
            start=day_start(start_date),
            end=day_start(end_date + timedelta(days=1)),
            **predicates,
        )

    @classmethod
    def for_day(cls, day: date, **predicates: Any) -> "EventFilter":
        """Filter for a single UTC calendar date."""
        return cls.for_dates(day, day, **predicates)

    def matches(self, event: MessageEvent) -> bool:
        """Evaluate the filter against one event."""
        if self.start is not None and event.timestamp < self.start:
            return False
        if self.end is not None and event.timestamp >= self.end:
            return False
        if self.user_id is not None and event.user_id != self.user_id:
            return False
        if self.session_id is not None and event.session_id != self.session_id:
            return False
        if self.user_ids is not None and event.user_id not in self.user_ids:
            return False
        if self.session_ids is not None and event.session_id not in self.session_ids:
            return False
        return True

    def to_mongo(self) -> dict[str, Any]:
        """Render the filter as a parameterized MongoDB query document."""
        query: dict[str, Any] = {}
        if self.start is not None or self.end is not None:
            bounds: dict[str, Any] = {}
            if self.start is not None:
                bounds["$gte"] = self.start
            if self.end is not None:
                bounds["$lt"] = self.end
            query["timestamp"] = bounds

        user_clauses: list[dict[str, Any]] = []
        if self.user_id is not None:
            user_clauses.append({"user_id": self.user_id})
        if self.user_ids is not None:
            user_clauses.append({"user_id": {"$in": sorted(self.user_ids)}})

        session_clauses: list[dict[str, Any]] = []
        if self.session_id is not None:
            session_clauses.append({"session_id": self.session_id})
        if self.session_ids is not None:
            session_clauses.append({"session_id": {"$in": sorted(self.session_ids)}})

        clauses = user_clauses + session_clauses
        if len(user_clauses) > 1 or len(session_clauses) > 1:
            # Equality and membership on the same field need $and
            if query:
                clauses.insert(0, query)
            return {"$and": clauses}
        for clause in clauses:
            query.update(clause)
        return query
