"""
Health check utilities for CHAT_TELEMETRY.

Provides health check functions for the event store and the export
pipeline.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pymongo.errors import PyMongoError

from ..constants import EXPORT_BUFFER_DEGRADED_PERCENT, EXPORT_BUFFER_UNHEALTHY_PERCENT

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    name: str
    status: HealthStatus
    message: str
    details: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class HealthChecker:
    """
    Runs registered health checks and folds them into one status.
    """

    def __init__(self):
        self._checks: list[Callable[[], Awaitable[HealthCheckResult]]] = []

    def register_check(self, check_func: Callable[[], Awaitable[HealthCheckResult]]) -> None:
        """
        Register a health check function.

        Args:
            check_func: Async function that returns HealthCheckResult
        """
        self._checks.append(check_func)

    async def check_all(self) -> dict[str, Any]:
        """
        Run all registered health checks.

        Returns:
            Dictionary with overall status and individual check results
        """
        results: list[HealthCheckResult] = []

        for check_func in self._checks:
            name = getattr(check_func, "__name__", repr(check_func))
            try:
                results.append(await check_func())
            except (
                RuntimeError,
                ValueError,
                TypeError,
                AttributeError,
                ConnectionError,
                OSError,
            ) as e:
                logger.error(f"Health check {name} failed: {e}", exc_info=True)
                results.append(
                    HealthCheckResult(
                        name=name,
                        status=HealthStatus.UNKNOWN,
                        message=f"Check failed: {str(e)}",
                    )
                )

        statuses = [r.status for r in results]
        if HealthStatus.UNHEALTHY in statuses:
            overall_status = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall_status = HealthStatus.DEGRADED
        elif all(s == HealthStatus.HEALTHY for s in statuses):
            overall_status = HealthStatus.HEALTHY
        else:
            overall_status = HealthStatus.UNKNOWN

        return {
            "status": overall_status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": [r.to_dict() for r in results],
        }


async def check_event_store_health(store: Any | None, timeout_seconds: float = 5.0) -> HealthCheckResult:
    """
    Check that the event store answers a ping.

    Args:
        store: EventStore instance
        timeout_seconds: Timeout for the ping

    Returns:
        HealthCheckResult
    """
    if store is None:
        return HealthCheckResult(
            name="event_store",
            status=HealthStatus.UNHEALTHY,
            message="Event store not initialized",
        )

    details = {"backend": type(store).__name__, "timeout_seconds": timeout_seconds}
    try:
        reachable = await asyncio.wait_for(store.ping(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        return HealthCheckResult(
            name="event_store",
            status=HealthStatus.UNHEALTHY,
            message=f"Event store ping timed out after {timeout_seconds}s",
            details=details,
        )
    except (PyMongoError, AttributeError, TypeError) as e:
        return HealthCheckResult(
            name="event_store",
            status=HealthStatus.UNHEALTHY,
            message=f"Event store health check failed: {str(e)}",
            details=details,
        )

    if not reachable:
        return HealthCheckResult(
            name="event_store",
            status=HealthStatus.UNHEALTHY,
            message="Event store is unreachable",
            details=details,
        )
    return HealthCheckResult(
        name="event_store",
        status=HealthStatus.HEALTHY,
        message="Event store is healthy",
        details=details,
    )


async def check_exporter_health(exporter: Any | None) -> HealthCheckResult:
    """
    Check export buffer usage and drop counts.

    Args:
        exporter: BufferedExporter instance (None when export is disabled)

    Returns:
        HealthCheckResult
    """
    if exporter is None:
        return HealthCheckResult(
            name="exporter",
            status=HealthStatus.UNKNOWN,
            message="Export is disabled",
        )

    stats = exporter.stats()
    usage_percent = stats["usage_percent"]

    if not stats["running"]:
        status = HealthStatus.DEGRADED
        message = "Export worker is not running"
    elif usage_percent > EXPORT_BUFFER_UNHEALTHY_PERCENT:
        status = HealthStatus.UNHEALTHY
        message = f"Export buffer usage is critical: {usage_percent:.1f}%"
    elif usage_percent > EXPORT_BUFFER_DEGRADED_PERCENT:
        status = HealthStatus.DEGRADED
        message = f"Export buffer usage is high: {usage_percent:.1f}%"
    elif stats["failed_batches"]:
        status = HealthStatus.DEGRADED
        message = f"{stats['failed_batches']} export batches dropped after retries"
    else:
        status = HealthStatus.HEALTHY
        message = f"Exporter is healthy: {usage_percent:.1f}% buffer usage"

    return HealthCheckResult(name="exporter", status=status, message=message, details=stats)
