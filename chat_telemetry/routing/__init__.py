"""
HTTP routers for reporting and health.
"""

from .analytics import create_analytics_router, create_health_router

__all__ = [
    "create_analytics_router",
    "create_health_router",
]
