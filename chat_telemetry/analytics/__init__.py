"""
Engagement analytics computed from the event store.
"""

from .engine import EngagementMetrics, compute_session_stats, to_date
from .models import EngagementReport, SessionStats

__all__ = [
    "EngagementMetrics",
    "EngagementReport",
    "SessionStats",
    "compute_session_stats",
    "to_date",
]
