"""
Result types returned by the engagement metrics engine.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any


@dataclass(frozen=True)
class SessionStats:
    """Per-session statistics derived from its message events."""

    session_id: str
    message_count: int
    duration_seconds: float
    user_message_count: int
    assistant_message_count: int
    first_timestamp: datetime
    last_timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "message_count": self.message_count,
            "duration_seconds": self.duration_seconds,
            "user_message_count": self.user_message_count,
            "assistant_message_count": self.assistant_message_count,
            "first_timestamp": self.first_timestamp.isoformat(),
            "last_timestamp": self.last_timestamp.isoformat(),
        }


@dataclass(frozen=True)
class EngagementReport:
    """
    Engagement over an inclusive date range.

    When no session falls in the range ``has_data`` is False and both
    averages are 0.0.
    """

    start_date: date
    end_date: date
    active_user_count: int
    total_sessions: int
    total_messages: int
    avg_session_duration: float
    avg_messages_per_session: float

    @property
    def has_data(self) -> bool:
        return self.total_sessions > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "active_user_count": self.active_user_count,
            "total_sessions": self.total_sessions,
            "total_messages": self.total_messages,
            "avg_session_duration": self.avg_session_duration,
            "avg_messages_per_session": self.avg_messages_per_session,
            "has_data": self.has_data,
        }
