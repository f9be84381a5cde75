"""
Prometheus metrics collection.

In-memory counters per process; Prometheus handles storage.
"""

import time
from typing import Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

from .. import __version__

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for WebPulse.

    Pass a dedicated CollectorRegistry to keep several collectors (e.g. one
    per test app) from clashing on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else REGISTRY

        # Service info
        self.service_info = Info(
            "webpulse_service",
            "WebPulse service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": __version__,
            "service": "webpulse",
        })

        # Capture metrics
        self.events_enqueued_total = Counter(
            "webpulse_events_enqueued_total",
            "Total events pushed onto the in-memory queue",
            registry=self.registry,
        )

        self.queue_depth = Gauge(
            "webpulse_queue_depth",
            "Events currently waiting for a flush",
            registry=self.registry,
        )

        # Flush metrics
        self.flushes_total = Counter(
            "webpulse_flushes_total",
            "Flush attempts by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.events_written_total = Counter(
            "webpulse_events_written_total",
            "Total events persisted to the event table",
            registry=self.registry,
        )

        self.events_dropped_total = Counter(
            "webpulse_events_dropped_total",
            "Total events discarded because their batch insert failed",
            registry=self.registry,
        )

        self.flush_duration = Histogram(
            "webpulse_flush_duration_seconds",
            "Batch insert duration in seconds",
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
            registry=self.registry,
        )

        self.batch_size_events = Histogram(
            "webpulse_flush_batch_size_events",
            "Number of events per flushed batch",
            buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000],
            registry=self.registry,
        )

        # Query metrics
        self.query_failures_total = Counter(
            "webpulse_query_failures_total",
            "Aggregation query failures",
            ["query"],
            registry=self.registry,
        )

        self.uptime_seconds = Gauge(
            "webpulse_uptime_seconds",
            "Service uptime in seconds",
            registry=self.registry,
        )

        # Track start time for uptime calculation
        self._start_time = time.time()

    def record_enqueued(self, queue_depth: int) -> None:
        """Record one event entering the queue."""
        self.events_enqueued_total.inc()
        self.queue_depth.set(queue_depth)

    def record_flush(self, events_written: int, duration_seconds: float, queue_depth: int) -> None:
        """Record a successful batch insert."""
        self.flushes_total.labels(outcome="success").inc()
        self.events_written_total.inc(events_written)
        self.batch_size_events.observe(events_written)
        self.flush_duration.observe(duration_seconds)
        self.queue_depth.set(queue_depth)

    def record_flush_failure(self, events_dropped: int, queue_depth: int) -> None:
        """Record a failed batch insert whose events were dropped."""
        self.flushes_total.labels(outcome="failure").inc()
        self.events_dropped_total.inc(events_dropped)
        self.queue_depth.set(queue_depth)

    def record_flush_skipped(self) -> None:
        """Record a trigger suppressed by an in-flight flush."""
        self.flushes_total.labels(outcome="skipped").inc()

    def record_query_failure(self, query: str) -> None:
        self.query_failures_total.labels(query=query).inc()

    def update_system_metrics(self) -> None:
        """Update system-level metrics."""
        self.uptime_seconds.set(time.time() - self._start_time)
