"""
Engagement and retention metrics.

Every metric is computed at read time from raw message events; nothing is
pre-aggregated or cached, so new metrics never require a change to the
write path and can never drift from the events they summarise.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Union

from ..constants import MONTHLY_WINDOW_DAYS, WEEKLY_WINDOW_DAYS
from ..events.models import EventFilter, MessageEvent, Role
from ..events.store import EventStore
from ..observability.metrics import MetricsCollector, timed_operation
from .models import EngagementReport, SessionStats

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]


def to_date(value: DateLike) -> date:
    """
    Coerce a date, datetime or ISO ``YYYY-MM-DD`` string to a date.

    Raises:
        ValueError: If a string is not an ISO date
        TypeError: For any other type
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise TypeError(f"Expected date, datetime or ISO string, got {type(value).__name__}")


def compute_session_stats(session_id: str, events: list[MessageEvent]) -> SessionStats | None:
    """
    Statistics for one session from its events in timestamp order.

    Returns None for an empty event list.
    """
    if not events:
        return None

    user_count = sum(1 for e in events if e.role == Role.USER)
    assistant_count = sum(1 for e in events if e.role == Role.ASSISTANT)
    first, last = events[0].timestamp, events[-1].timestamp
    return SessionStats(
        session_id=session_id,
        message_count=len(events),
        duration_seconds=max((last - first).total_seconds(), 0.0),
        user_message_count=user_count,
        assistant_message_count=assistant_count,
        first_timestamp=first,
        last_timestamp=last,
    )


class EngagementMetrics:
    """
    Read-only metrics over an EventStore.

    Performs no locking of its own; it relies on the store's isolation and
    tolerates events appended while a computation is running.

    Example:
        metrics = EngagementMetrics(store)
        dau = await metrics.active_users("2024-01-01")
        d1 = await metrics.retention("2024-01-01", 1)
        report = await metrics.engagement_report("2024-01-01", "2024-01-31")
    """

    def __init__(self, store: EventStore, collector: MetricsCollector | None = None):
        """
        Args:
            store: Event store to query
            collector: Optional collector receiving per-operation timings
        """
        self._store = store
        self._collector = collector

    @property
    def store(self) -> EventStore:
        return self._store

    # ------------------------------------------------------------------
    # Active users
    # ------------------------------------------------------------------

    async def _users_between(self, start: date, end: date) -> set[str]:
        return await self._store.distinct("user_id", EventFilter.for_dates(start, end))

    @timed_operation("analytics.active_users")
    async def active_users(self, day: DateLike) -> int:
        """Distinct users with at least one event on ``day`` (UTC)."""
        day = to_date(day)
        return len(await self._users_between(day, day))

    @timed_operation("analytics.active_users_between")
    async def active_users_between(self, start_date: DateLike, end_date: DateLike) -> int:
        """Distinct users with at least one event in the inclusive range."""
        start, end = to_date(start_date), to_date(end_date)
        if start > end:
            raise ValueError(f"start_date {start} is after end_date {end}")
        return len(await self._users_between(start, end))

    async def daily_active_users(self, day: DateLike) -> int:
        return await self.active_users(day)

    async def weekly_active_users(self, day: DateLike) -> int:
        """Distinct users over the 7 days ending on ``day``."""
        day = to_date(day)
        return await self.active_users_between(day - timedelta(days=WEEKLY_WINDOW_DAYS - 1), day)

    async def monthly_active_users(self, day: DateLike) -> int:
        """Distinct users over the 30 days ending on ``day``."""
        day = to_date(day)
        return await self.active_users_between(day - timedelta(days=MONTHLY_WINDOW_DAYS - 1), day)

    @timed_operation("analytics.stickiness")
    async def stickiness(self, day: DateLike) -> float:
        """DAU / MAU for ``day`` as a percentage; 0.0 when MAU is zero."""
        day = to_date(day)
        mau = await self.monthly_active_users(day)
        if mau == 0:
            return 0.0
        dau = await self.active_users(day)
        return 100.0 * dau / mau

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    @timed_operation("analytics.retention")
    async def retention(self, cohort_date: DateLike, offset_days: int) -> float:
        """
        Percentage of the ``cohort_date`` cohort active exactly ``offset_days`` later.

        Only activity on the target date counts; a user who came back on an
        intermediate day but not on the target date has not returned.

        Args:
            cohort_date: Date defining the cohort
            offset_days: Days after the cohort date (>= 0)

        Returns:
            Value in [0, 100]; 0.0 when the cohort is empty
        """
        if offset_days < 0:
            raise ValueError(f"offset_days must be >= 0, got {offset_days}")
        cohort_day = to_date(cohort_date)

        cohort = await self._users_between(cohort_day, cohort_day)
        if not cohort:
            return 0.0

        target_day = cohort_day + timedelta(days=offset_days)
        returned = await self._store.distinct(
            "user_id", EventFilter.for_day(target_day, user_ids=frozenset(cohort))
        )
        return 100.0 * len(returned) / len(cohort)

    async def retention_curve(
        self, cohort_date: DateLike, offsets: Iterable[int] = (1, 7, 30)
    ) -> dict[int, float]:
        """Exact-day retention of one cohort at several offsets."""
        return {offset: await self.retention(cohort_date, offset) for offset in offsets}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @timed_operation("analytics.session_stats")
    async def session_stats(self, session_id: str) -> SessionStats | None:
        """
        Statistics for one session.

        Returns:
            SessionStats, or None when the session has no events
        """
        events = await self._store.query(EventFilter(session_id=session_id))
        return compute_session_stats(session_id, events)

    @timed_operation("analytics.engagement_report")
    async def engagement_report(
        self, start_date: DateLike, end_date: DateLike
    ) -> EngagementReport:
        """
        Engagement over sessions with any event in the inclusive date range.

        Session statistics cover each whole session, including events that
        fall outside the range.
        """
        start, end = to_date(start_date), to_date(end_date)
        if start > end:
            raise ValueError(f"start_date {start} is after end_date {end}")

        range_filter = EventFilter.for_dates(start, end)
        session_ids = await self._store.distinct("session_id", range_filter)
        active_user_count = len(await self._store.distinct("user_id", range_filter))

        if not session_ids:
            logger.debug(f"No sessions between {start} and {end}")
            return EngagementReport(
                start_date=start,
                end_date=end,
                active_user_count=active_user_count,
                total_sessions=0,
                total_messages=0,
                avg_session_duration=0.0,
                avg_messages_per_session=0.0,
            )

        by_session: dict[str, list[MessageEvent]] = defaultdict(list)
        for event in await self._store.query(EventFilter(session_ids=frozenset(session_ids))):
            by_session[event.session_id].append(event)

        stats = [
            s
            for s in (compute_session_stats(sid, by_session[sid]) for sid in sorted(session_ids))
            if s is not None and s.message_count > 0
        ]
        if not stats:
            # Sessions vanished between the two reads; report no data
            return EngagementReport(start, end, active_user_count, 0, 0, 0.0, 0.0)

        total_messages = sum(s.message_count for s in stats)
        return EngagementReport(
            start_date=start,
            end_date=end,
            active_user_count=active_user_count,
            total_sessions=len(stats),
            total_messages=total_messages,
            avg_session_duration=sum(s.duration_seconds for s in stats) / len(stats),
            avg_messages_per_session=total_messages / len(stats),
        )
