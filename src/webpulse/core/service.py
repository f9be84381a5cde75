"""
Analytics service: the object a host application owns.

Composes the queue, anonymizer, store, flusher and query layer, and gives
them a start/stop lifecycle. Create one per application and keep it on
app.state rather than in a module global.
"""

from typing import Any, Optional

import structlog

from ..config import Settings
from ..models.event import EventRecord
from .anonymizer import Anonymizer
from .flusher import BatchFlusher, FlushResult
from .metrics import MetricsCollector
from .queries import AnalyticsQueries
from .queue import EventQueue
from .store import EventStore

logger = structlog.get_logger(__name__)


class AnalyticsService:
    """
    Ingestion pipeline plus read-side queries.

    Example usage:
        service = AnalyticsService(settings)
        await service.start()
        service.record(event)
        summary = await service.queries.summary()
        await service.stop()
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[Any] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.settings = settings
        self.metrics = metrics
        self.store = store if store is not None else EventStore(settings.database)
        self.queue = EventQueue()
        self.anonymizer = Anonymizer(
            settings.anonymization.policy,
            settings.anonymization.hash_salt,
        )
        self.flusher = BatchFlusher(self.queue, self.store, settings.flush, metrics)
        self.queries = AnalyticsQueries(self.store, metrics)
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Open the store, ensure the table exists and start the flush timer."""
        if self._started:
            return

        await self.store.open()
        try:
            await self.store.ensure_schema()
        except Exception as e:
            # Flushes keep failing (and dropping) until the table exists
            logger.error("Failed to ensure event table", error=str(e), error_type=type(e).__name__)

        await self.flusher.start()
        self._started = True

        logger.info(
            "Analytics enabled",
            table=self.settings.database.table,
            batch_size=self.settings.flush.batch_size,
            interval_ms=self.settings.flush.interval_ms,
            anonymization=self.anonymizer.policy.value,
        )

    async def stop(self, final_flush: bool = True) -> None:
        """Stop the flush timer, optionally flush what is queued, close the store."""
        if not self._started:
            return

        self._started = False
        await self.flusher.stop(final_flush=final_flush)
        await self.store.close()
        logger.info("Analytics stopped")

    def record(self, event: EventRecord) -> None:
        """
        Enqueue an event; size-triggers a flush when a batch is ready.

        Never raises and never waits.
        """
        try:
            self.queue.push(event)
            depth = len(self.queue)
            if self.metrics:
                self.metrics.record_enqueued(depth)
            if depth >= self.flusher.batch_size:
                self.flusher.trigger()
        except Exception as e:
            logger.error("Failed to record event", error=str(e))

    async def flush(self) -> FlushResult:
        """Flush one batch now."""
        return await self.flusher.flush()
