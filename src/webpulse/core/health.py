"""
Health checker for readiness probes.

Checks:
- Database reachability
- Batch flusher running
- Queue backlog within bounds
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List

import structlog

from .service import AnalyticsService

logger = structlog.get_logger(__name__)

BACKLOG_BATCHES = 4


@dataclass
class HealthCheck:
    """Individual health check result."""
    name: str
    status: str  # "healthy", "unhealthy"
    message: str
    details: Dict[str, Any]
    last_check: float


@dataclass
class HealthStatus:
    """Overall health status."""
    is_healthy: bool
    checks: Dict[str, HealthCheck]
    failed_checks: List[str]
    timestamp: float


class HealthChecker:
    """Readiness checks over an AnalyticsService."""

    def __init__(self, service: AnalyticsService) -> None:
        self.service = service

    async def check_all(self) -> HealthStatus:
        """Perform all health checks and return overall status."""
        checks: Dict[str, HealthCheck] = {}
        failed_checks: List[str] = []

        check_results = await asyncio.gather(
            self._check_database(),
            asyncio.to_thread(self._check_flusher),
            asyncio.to_thread(self._check_queue),
            return_exceptions=True,
        )

        check_names = ["database", "flusher", "queue"]
        for name, result in zip(check_names, check_results):
            if isinstance(result, BaseException):
                result = HealthCheck(
                    name=name,
                    status="unhealthy",
                    message=f"Check failed: {result}",
                    details={"error": str(result), "error_type": type(result).__name__},
                    last_check=time.time(),
                )
            checks[name] = result
            if result.status != "healthy":
                failed_checks.append(name)

        return HealthStatus(
            is_healthy=not failed_checks,
            checks=checks,
            failed_checks=failed_checks,
            timestamp=time.time(),
        )

    async def _check_database(self) -> HealthCheck:
        """Check the event store answers a trivial query."""
        start = time.perf_counter()
        try:
            await self.service.store.ping()
        except Exception as e:
            logger.warning("Database health check failed", error=str(e))
            return HealthCheck(
                name="database",
                status="unhealthy",
                message=f"Cannot reach database: {e}",
                details={"error": str(e)},
                last_check=time.time(),
            )

        return HealthCheck(
            name="database",
            status="healthy",
            message="Database is reachable",
            details={"response_time_ms": round((time.perf_counter() - start) * 1000, 2)},
            last_check=time.time(),
        )

    def _check_flusher(self) -> HealthCheck:
        flusher = self.service.flusher
        running = flusher.is_running
        return HealthCheck(
            name="flusher",
            status="healthy" if running else "unhealthy",
            message="Batch flusher is running" if running else "Batch flusher is not running",
            details={"running": running, "flushing": flusher.is_flushing},
            last_check=time.time(),
        )

    def _check_queue(self) -> HealthCheck:
        depth = len(self.service.queue)
        limit = self.service.flusher.batch_size * BACKLOG_BATCHES
        healthy = depth < limit
        return HealthCheck(
            name="queue",
            status="healthy" if healthy else "unhealthy",
            message=f"Queue depth {depth}" if healthy else f"Queue backlog {depth} exceeds {limit}",
            details={"depth": depth, "limit": limit},
            last_check=time.time(),
        )
