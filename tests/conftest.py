"""
Pytest configuration and shared fixtures.

Contains common test fixtures and an in-memory event store that stands in
for PostgreSQL: it keeps inserted events in a list and answers the named
dashboard queries in Python.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, Set

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from webpulse.config import (
    DashboardSettings,
    DatabaseSettings,
    FlushSettings,
    SecuritySettings,
    Settings,
)
from webpulse.core.exceptions import StoreError
from webpulse.main import create_app
from webpulse.models.event import EventRecord

ADMIN_TOKEN = "test_admin_token_123456789abc"


def _percentile_cont(values: List[int], fraction: float) -> Optional[float]:
    if not values:
        return None
    ordered = sorted(values)
    position = fraction * (len(ordered) - 1)
    lower = int(position)
    upper = min(lower + 1, len(ordered) - 1)
    return ordered[lower] + (ordered[upper] - ordered[lower]) * (position - lower)


def _truncate(ts: datetime, bucket: str) -> datetime:
    if bucket == "minute":
        return ts.replace(second=0, microsecond=0)
    if bucket == "hour":
        return ts.replace(minute=0, second=0, microsecond=0)
    day = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    if bucket == "week":
        return day - timedelta(days=day.weekday())
    if bucket == "month":
        return day.replace(day=1)
    return day


class FakeEventStore:
    """In-memory stand-in for EventStore with failure and latency knobs."""

    def __init__(self, table_name: str = "web_analytics_events") -> None:
        self.table_name = table_name
        self.rows: List[EventRecord] = []
        self.insert_calls: List[int] = []
        self.fetch_calls: List[tuple] = []
        self.is_open = False
        self.schema_ensured = False

        self.fail_schema = False
        self.fail_inserts = False
        self.fail_ping = False
        self.fail_queries: Set[str] = set()
        self.insert_delay = 0.0

        self.active_inserts = 0
        self.max_concurrent_inserts = 0

    async def open(self) -> None:
        self.is_open = True

    async def close(self) -> None:
        self.is_open = False

    async def ensure_schema(self) -> None:
        if self.fail_schema:
            raise StoreError("Failed to ensure table: permission denied for schema public")
        self.schema_ensured = True

    async def insert_events(self, events: Sequence[EventRecord]) -> int:
        self.active_inserts += 1
        self.max_concurrent_inserts = max(self.max_concurrent_inserts, self.active_inserts)
        try:
            if self.insert_delay:
                await asyncio.sleep(self.insert_delay)
            if self.fail_inserts:
                raise StoreError("Batch insert failed: connection refused")
            self.rows.extend(events)
            self.insert_calls.append(len(events))
            return len(events)
        finally:
            self.active_inserts -= 1

    async def ping(self) -> None:
        if self.fail_ping:
            raise StoreError("Database ping failed: connection refused")

    async def fetch_all(self, query: Any, params: Optional[Dict[str, Any]] = None, *, name: str) -> List[Dict[str, Any]]:
        self.fetch_calls.append((name, params))
        if name in self.fail_queries:
            raise StoreError(
                f"Query '{name}' failed: canceling statement due to statement timeout",
                details={"query": name},
            )
        handler = getattr(self, f"_query_{name}")
        return handler(params or {})

    def _since(self, delta: timedelta) -> List[EventRecord]:
        cutoff = datetime.now(timezone.utc) - delta
        return [r for r in self.rows if r.occurred_at > cutoff]

    def _query_total_30d(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [{"count": len(self._since(timedelta(days=30)))}]

    def _query_status_counts(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        counts = Counter(r.status for r in self._since(timedelta(days=7)))
        return [{"status": s, "c": c} for s, c in counts.most_common()]

    def _query_latency_percentiles(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        values = [r.latency_ms for r in self._since(timedelta(hours=24))]
        return [{
            "p50": _percentile_cont(values, 0.5),
            "p95": _percentile_cont(values, 0.95),
            "p99": _percentile_cont(values, 0.99),
        }]

    def _query_traffic(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        counts = Counter(_truncate(r.occurred_at, params["bucket"]) for r in self._since(params["window"]))
        return [{"t": t, "c": c} for t, c in sorted(counts.items())]

    def _query_top_routes(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        counts = Counter(r.route for r in self._since(timedelta(hours=24)) if r.route is not None)
        return [{"route": route, "c": c} for route, c in counts.most_common(params["limit"])]

    def _query_top_ips(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        counts = Counter(r.ip_full or r.ip_anonymized for r in self._since(timedelta(hours=24)))
        return [{"ip": ip, "c": c} for ip, c in counts.most_common(params["limit"])]

    def _query_recent(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        latest = sorted(self.rows, key=lambda r: r.occurred_at, reverse=True)[: params["limit"]]
        return [
            r.model_dump(include={
                "occurred_at", "method", "route", "status", "latency_ms",
                "ip_anonymized", "ip_full", "user_agent",
            })
            for r in latest
        ]


@pytest.fixture
def fake_store() -> FakeEventStore:
    """Fresh in-memory event store."""
    return FakeEventStore()


@pytest.fixture
def make_event() -> Callable[..., EventRecord]:
    """Factory for event records with sensible defaults."""
    def _make(**overrides: Any) -> EventRecord:
        data: Dict[str, Any] = {
            "route": "/items/{item_id}",
            "method": "GET",
            "status": 200,
            "latency_ms": 12,
            "ip_anonymized": "203.0.113.0",
            "user_agent": "pytest",
        }
        data.update(overrides)
        return EventRecord(**data)
    return _make


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a slow timer so tests control when flushes happen."""
    return Settings(
        log_level="DEBUG",
        database=DatabaseSettings(table="test_events"),
        flush=FlushSettings(batch_size=500, interval_ms=60_000),
        dashboard=DashboardSettings(prefix="/analytics"),
        security=SecuritySettings(admin_token=ADMIN_TOKEN),
    )


@pytest.fixture
def flush_settings() -> FlushSettings:
    return FlushSettings(batch_size=3, interval_ms=60_000)


def add_host_routes(app: FastAPI) -> None:
    """Routes standing in for the host application's own endpoints."""

    @app.get("/items/{item_id}")
    async def get_item(item_id: int) -> Dict[str, Any]:
        return {"id": item_id}

    @app.get("/fail")
    async def fail() -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": "boom"})

    @app.get("/crash")
    async def crash() -> Dict[str, Any]:
        raise RuntimeError("handler exploded")


@pytest.fixture
def test_app(test_settings: Settings, fake_store: FakeEventStore) -> FastAPI:
    app = create_app(settings=test_settings, store=fake_store, registry=CollectorRegistry())
    add_host_routes(app)
    return app


@pytest.fixture
def test_client(test_app: FastAPI) -> Generator[TestClient, None, None]:
    """FastAPI test client with the lifespan (and flusher) running."""
    with TestClient(test_app) as client:
        yield client


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
