"""
Reporting endpoints for dashboards.

Exposes the EngagementMetrics query interface and the health checks over
HTTP. The chat API itself is not part of this package.

Usage:
    from fastapi import FastAPI
    from chat_telemetry.routing import create_analytics_router, create_health_router

    app = FastAPI()
    app.include_router(create_analytics_router(context.metrics))
    app.include_router(create_health_router(context.health))
"""

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse

from ..analytics.engine import EngagementMetrics
from ..observability.health import HealthChecker, HealthStatus
from .schemas import (
    ActiveUsersResponse,
    EngagementReportResponse,
    RetentionResponse,
    SessionStatsResponse,
    StickinessResponse,
)

logger = logging.getLogger(__name__)


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise HTTPException(
            status_code=422,
            detail="start_date must not be after end_date",
        )


def create_analytics_router(metrics: EngagementMetrics, prefix: str = "/analytics") -> APIRouter:
    """
    Build the reporting router bound to a metrics engine.

    Args:
        metrics: Metrics engine to query
        prefix: URL prefix for every route

    Returns:
        APIRouter ready to include in a FastAPI app
    """
    router = APIRouter(prefix=prefix, tags=["analytics"])

    @router.get("/active-users", response_model=ActiveUsersResponse)
    async def active_users(day: date = Query(...)):
        count = await metrics.active_users(day)
        return ActiveUsersResponse(start_date=day, end_date=day, active_users=count)

    @router.get("/active-users/range", response_model=ActiveUsersResponse)
    async def active_users_range(start_date: date = Query(...), end_date: date = Query(...)):
        _check_range(start_date, end_date)
        count = await metrics.active_users_between(start_date, end_date)
        return ActiveUsersResponse(start_date=start_date, end_date=end_date, active_users=count)

    @router.get("/stickiness", response_model=StickinessResponse)
    async def stickiness(day: date = Query(...)):
        value = await metrics.stickiness(day)
        return StickinessResponse(day=day, stickiness_percent=value)

    @router.get("/retention", response_model=RetentionResponse)
    async def retention(cohort_date: date = Query(...), offset_days: int = Query(..., ge=0)):
        value = await metrics.retention(cohort_date, offset_days)
        return RetentionResponse(
            cohort_date=cohort_date, offset_days=offset_days, retention_percent=value
        )

    @router.get("/sessions/{session_id}", response_model=SessionStatsResponse)
    async def session_stats(session_id: str):
        stats = await metrics.session_stats(session_id)
        if stats is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Session {session_id} has no events",
            )
        return SessionStatsResponse(**stats.to_dict())

    @router.get("/engagement", response_model=EngagementReportResponse)
    async def engagement(start_date: date = Query(...), end_date: date = Query(...)):
        _check_range(start_date, end_date)
        report = await metrics.engagement_report(start_date, end_date)
        return EngagementReportResponse(**report.to_dict())

    return router


def create_health_router(checker: HealthChecker, path: str = "/health") -> APIRouter:
    """
    Build a router exposing the aggregated health status.

    Responds 503 when the overall status is unhealthy.
    """
    router = APIRouter(tags=["health"])

    @router.get(path)
    async def health():
        result = await checker.check_all()
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if result["status"] == HealthStatus.UNHEALTHY.value
            else status.HTTP_200_OK
        )
        if code != status.HTTP_200_OK:
            logger.warning(f"Health check reported {result['status']}")
        return JSONResponse(status_code=code, content=result)

    return router
