"""
Prometheus metrics endpoint.

Exposes metrics in Prometheus text format for scraping.
"""

import structlog
from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="""
    Prometheus metrics endpoint in standard text format.

    **Key Metrics:**
    - webpulse_events_enqueued_total - Events captured
    - webpulse_events_written_total - Events persisted
    - webpulse_events_dropped_total - Events lost with a failed batch
    - webpulse_flushes_total{outcome} - Flushes by success/failure/skipped
    - webpulse_flush_duration_seconds - Batch insert latency histogram
    - webpulse_queue_depth - Events waiting for a flush
    - webpulse_query_failures_total{query} - Dashboard query failures
    """,
)
async def get_metrics(request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping.
    """
    metrics_collector = getattr(request.app.state, "metrics", None)

    if not metrics_collector:
        logger.warning("Metrics collector not initialized")
        return Response(
            content="# Metrics collector not initialized\n",
            media_type=CONTENT_TYPE_LATEST,
        )

    service = getattr(request.app.state, "analytics", None)
    if service is not None:
        metrics_collector.queue_depth.set(len(service.queue))
    metrics_collector.update_system_metrics()

    metrics_data = generate_latest(metrics_collector.registry)
    logger.debug("Metrics scraped successfully", size_bytes=len(metrics_data))

    return Response(
        content=metrics_data,
        media_type=CONTENT_TYPE_LATEST,
    )
