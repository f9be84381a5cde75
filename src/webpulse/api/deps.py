"""
Shared request dependencies.
"""

from fastapi import HTTPException, Request, status

from ..core.service import AnalyticsService


async def get_analytics_service(request: Request) -> AnalyticsService:
    """Dependency returning the analytics service from app state."""
    service = getattr(request.app.state, "analytics", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analytics service not available",
        )
    return service
