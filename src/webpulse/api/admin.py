"""
Admin API endpoints for WebPulse.

Provides administrative functions like manual flush operations.
"""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from ..core.auth import authenticate_admin_token
from ..core.service import AnalyticsService
from .deps import get_analytics_service

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/v1/admin/flush")
async def flush_events(
    service: AnalyticsService = Depends(get_analytics_service),
    admin_token: str = Depends(authenticate_admin_token),
) -> Dict[str, Any]:
    """
    Manually flush one batch of queued events.

    A failed batch is dropped exactly as on the timer path; the response
    reports how many events were lost.
    """
    logger.info("Manual flush requested", admin_token=admin_token[:8] + "...")

    result = await service.flush()

    if not result.success:
        logger.warning("Manual flush failed", error=result.error_message, events_dropped=result.events_dropped)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Flush failed: {result.error_message}",
        )

    logger.info(
        "Manual flush completed",
        events_written=result.events_written,
        skipped=result.skipped,
    )
    return {
        "message": "Flush skipped, another flush in flight" if result.skipped else "Flush completed successfully",
        **result.to_dict(),
        "queue_depth": len(service.queue),
    }


@router.get("/v1/admin/status")
async def get_admin_status(
    service: AnalyticsService = Depends(get_analytics_service),
    admin_token: str = Depends(authenticate_admin_token),
) -> Dict[str, Any]:
    """
    Get admin status information.

    Returns queue and flusher state.
    """
    logger.debug("Admin status requested", admin_token=admin_token[:8] + "...")

    return {
        "queue": {
            "depth": len(service.queue),
            "total_enqueued": service.queue.total_pushed,
        },
        "flusher": {
            "running": service.flusher.is_running,
            "flushing": service.flusher.is_flushing,
            "batch_size": service.flusher.batch_size,
            "interval_seconds": service.flusher.interval,
        },
        "anonymization": service.anonymizer.policy.value,
    }
