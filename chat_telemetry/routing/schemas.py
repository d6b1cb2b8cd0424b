"""
Response models for the reporting endpoints.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


class ActiveUsersResponse(BaseModel):
    start_date: date
    end_date: date
    active_users: int = Field(..., ge=0)


class StickinessResponse(BaseModel):
    day: date
    stickiness_percent: float = Field(..., ge=0, le=100)


class RetentionResponse(BaseModel):
    cohort_date: date
    offset_days: int = Field(..., ge=0)
    retention_percent: float = Field(..., ge=0, le=100)


class SessionStatsResponse(BaseModel):
    session_id: str
    message_count: int
    duration_seconds: float
    user_message_count: int
    assistant_message_count: int
    first_timestamp: datetime
    last_timestamp: datetime


class EngagementReportResponse(BaseModel):
    start_date: date
    end_date: date
    active_user_count: int
    total_sessions: int
    total_messages: int
    avg_session_duration: float
    avg_messages_per_session: float
    has_data: bool
