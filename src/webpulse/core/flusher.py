"""
Batch flusher moving queued events into the event store.

Features:
- Periodic flush on a background asyncio task
- Immediate flush when the queue reaches the batch size
- At most one flush in flight; overlapping triggers are dropped
- Failed batches are dropped, never retried
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Coroutine, Dict, Optional, Set

import structlog

from ..config import FlushSettings
from .metrics import MetricsCollector
from .queue import EventQueue

logger = structlog.get_logger(__name__)


@dataclass
class FlushResult:
    """Result of one flush invocation."""
    success: bool
    events_written: int = 0
    events_dropped: int = 0
    skipped: bool = False
    duration_ms: float = 0.0
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "events_written": self.events_written,
            "events_dropped": self.events_dropped,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
            "error": self.error_message,
        }


class BatchFlusher:
    """
    Drains the event queue into the store in bounded batches.

    The in-flight flag is a plain boolean: it is tested and set before the
    first await, so on a single event loop no two flushes can interleave.
    """

    def __init__(
        self,
        queue: EventQueue,
        store: Any,
        settings: FlushSettings,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.queue = queue
        self.store = store
        self.batch_size = settings.batch_size
        self.interval = settings.interval_seconds
        self.metrics = metrics
        self._flushing = False
        self._running = False
        self._task: Optional[asyncio.Task[None]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set["asyncio.Task[FlushResult]"] = set()

        logger.info(
            "Batch flusher initialized",
            batch_size=self.batch_size,
            interval_seconds=self.interval,
        )

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic flush task."""
        if self._running:
            return

        self._loop = asyncio.get_running_loop()
        self._running = True
        self._task = asyncio.create_task(self._run_flush_loop())

        logger.info("Batch flusher started")

    async def stop(self, final_flush: bool = True) -> None:
        """
        Stop the periodic task.

        Any flush already in flight (timer or triggered) runs to completion.
        With final_flush, the queue is then drained batch by batch until it
        is empty or a batch fails.
        """
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

        if final_flush:
            while len(self.queue) > 0:
                result = await self.flush()
                if not result.success or result.events_written == 0:
                    break

        remaining = len(self.queue)
        if remaining:
            logger.warning("Batch flusher stopped with events still queued", events=remaining)

        logger.info("Batch flusher stopped")

    async def _run_flush_loop(self) -> None:
        """Main timer loop."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                # Shielded: stop() awaits this flush through _pending
                await asyncio.shield(self._track(self.flush()))
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Flush loop error", error=str(e))

    def trigger(self) -> None:
        """
        Request a flush without waiting for it.

        Safe to call from the event loop or from a worker thread. Dropped
        if a flush is already in flight or the flusher is not running.
        """
        if not self._running or self._loop is None:
            return
        if self._flushing:
            self._record_skipped()
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._spawn()
        else:
            self._loop.call_soon_threadsafe(self._spawn)

    def _spawn(self) -> None:
        if not self._running:
            return
        if self._flushing:
            self._record_skipped()
            return
        self._track(self.flush())

    def _track(self, coro: Coroutine[Any, Any, FlushResult]) -> "asyncio.Task[FlushResult]":
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _record_skipped(self) -> None:
        if self.metrics:
            self.metrics.record_flush_skipped()
        logger.debug("Flush already in flight, trigger dropped")

    async def flush(self) -> FlushResult:
        """
        Move up to batch_size events from the queue head into the store.

        Returns:
            FlushResult; skipped=True when another flush was in flight.
        """
        if self._flushing:
            self._record_skipped()
            return FlushResult(success=True, skipped=True)

        self._flushing = True
        try:
            batch = self.queue.take(self.batch_size)
            if not batch:
                return FlushResult(success=True)

            start = time.perf_counter()
            try:
                written = await self.store.insert_events(batch)
            except Exception as e:
                duration_ms = (time.perf_counter() - start) * 1000
                logger.error(
                    "Batch insert failed, dropping batch",
                    events=len(batch),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if self.metrics:
                    self.metrics.record_flush_failure(len(batch), len(self.queue))
                return FlushResult(
                    success=False,
                    events_dropped=len(batch),
                    duration_ms=duration_ms,
                    error_message=str(e),
                )

            duration = time.perf_counter() - start
            if self.metrics:
                self.metrics.record_flush(written, duration, len(self.queue))

            logger.debug(
                "Batch flushed",
                events_written=written,
                queue_remaining=len(self.queue),
                duration_ms=round(duration * 1000, 2),
            )
            return FlushResult(success=True, events_written=written, duration_ms=duration * 1000)
        finally:
            self._flushing = False
