"""
Aggregation queries behind the dashboard.

Every query is time-windowed and bounded. Caller-supplied parameters
(traffic window and bucket) are checked against an allowlist and then
bound as query parameters; nothing from a request is spliced into SQL.
"""

import asyncio
import re
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import structlog
from psycopg import sql

from ..models.analytics import (
    IpCount,
    LatencyPercentiles,
    RecentEvent,
    RouteCount,
    StatusCount,
    Summary,
    TrafficPoint,
)
from .exceptions import QueryError, QueryValidationError, StoreError
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)

TOP_LIMIT = 50
RECENT_LIMIT = 200
DEFAULT_WINDOW = "24 hours"
MAX_WINDOW = timedelta(days=366)

_WINDOW_PATTERN = re.compile(r"^\s*(\d{1,6})\s*(minute|hour|day|week)s?\s*$", re.IGNORECASE)
_WINDOW_UNITS = {
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}


class TrafficBucket(str, Enum):
    """Granularities accepted by date_trunc for the traffic view."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def parse_bucket(value: Optional[str]) -> TrafficBucket:
    """Validate a bucket name; None means the default (hour)."""
    if value is None or value == "":
        return TrafficBucket.HOUR
    try:
        return TrafficBucket(value.strip().lower())
    except ValueError:
        raise QueryValidationError(
            "bucket", value, ", ".join(b.value for b in TrafficBucket)
        )


def parse_window(value: Optional[str]) -> timedelta:
    """
    Convert a lookback window such as "24 hours" or "7 days" to a timedelta.

    Accepts "<N> <unit>" with unit minute/hour/day/week (plural optional),
    1 <= N, total at most 366 days.
    """
    if value is None or value == "":
        value = DEFAULT_WINDOW

    match = _WINDOW_PATTERN.match(value)
    if not match:
        raise QueryValidationError("window", value, "'<N> minutes|hours|days|weeks'")

    amount = int(match.group(1))
    window = amount * _WINDOW_UNITS[match.group(2).lower()]
    if amount < 1 or window > MAX_WINDOW:
        raise QueryValidationError("window", value, "between 1 minute and 366 days")
    return window


class AnalyticsQueries:
    """
    Read-only views over the event table.

    Store failures are logged and re-raised as QueryError, which the API
    renders as a structured error payload.
    """

    def __init__(self, store: Any, metrics: Optional[MetricsCollector] = None) -> None:
        self.store = store
        self.metrics = metrics

    @property
    def _table(self) -> sql.Identifier:
        return sql.Identifier(self.store.table_name)

    async def _fetch(
        self,
        name: str,
        query: sql.Composable,
        params: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        try:
            return await self.store.fetch_all(query, params, name=name)
        except StoreError as e:
            logger.error("Aggregation query failed", query=name, error=str(e))
            if self.metrics:
                self.metrics.record_query_failure(name)
            raise QueryError(name, f"Query '{name}' failed") from e

    async def total_30d(self) -> int:
        rows = await self._fetch(
            "total_30d",
            sql.SQL(
                "SELECT COUNT(*)::int AS count FROM {table} "
                "WHERE occurred_at > now() - interval '30 days'"
            ).format(table=self._table),
        )
        return rows[0]["count"] if rows else 0

    async def status_counts(self) -> List[StatusCount]:
        rows = await self._fetch(
            "status_counts",
            sql.SQL(
                "SELECT status, COUNT(*)::int AS c FROM {table} "
                "WHERE occurred_at > now() - interval '7 days' "
                "GROUP BY status ORDER BY c DESC"
            ).format(table=self._table),
        )
        return [StatusCount(**row) for row in rows]

    async def latency_percentiles(self) -> LatencyPercentiles:
        rows = await self._fetch(
            "latency_percentiles",
            sql.SQL(
                """
                SELECT
                    percentile_cont(0.5) WITHIN GROUP (ORDER BY latency_ms) AS p50,
                    percentile_cont(0.95) WITHIN GROUP (ORDER BY latency_ms) AS p95,
                    percentile_cont(0.99) WITHIN GROUP (ORDER BY latency_ms) AS p99
                FROM {table}
                WHERE occurred_at > now() - interval '24 hours'
                """
            ).format(table=self._table),
        )
        return LatencyPercentiles(**rows[0]) if rows else LatencyPercentiles()

    async def summary(self) -> Summary:
        """Trailing-30-day total, 7-day status mix and 24-hour latency percentiles."""
        total, statuses, latency = await asyncio.gather(
            self.total_30d(),
            self.status_counts(),
            self.latency_percentiles(),
        )
        return Summary(total_30d=total, statuses=statuses, latency=latency)

    async def traffic(self, window: Optional[str] = None, bucket: Optional[str] = None) -> List[TrafficPoint]:
        """Event counts per time bucket within the lookback window."""
        lookback = parse_window(window)
        granularity = parse_bucket(bucket)

        rows = await self._fetch(
            "traffic",
            sql.SQL(
                "SELECT date_trunc(%(bucket)s, occurred_at) AS t, COUNT(*)::int AS c "
                "FROM {table} "
                "WHERE occurred_at > now() - %(window)s "
                "GROUP BY 1 ORDER BY 1"
            ).format(table=self._table),
            {"bucket": granularity.value, "window": lookback},
        )
        return [TrafficPoint(**row) for row in rows]

    async def top_routes(self) -> List[RouteCount]:
        rows = await self._fetch(
            "top_routes",
            sql.SQL(
                "SELECT route, COUNT(*)::int AS c FROM {table} "
                "WHERE occurred_at > now() - interval '24 hours' AND route IS NOT NULL "
                "GROUP BY 1 ORDER BY 2 DESC LIMIT %(limit)s"
            ).format(table=self._table),
            {"limit": TOP_LIMIT},
        )
        return [RouteCount(**row) for row in rows]

    async def top_ips(self) -> List[IpCount]:
        rows = await self._fetch(
            "top_ips",
            sql.SQL(
                "SELECT COALESCE(ip_full, ip_anonymized) AS ip, COUNT(*)::int AS c FROM {table} "
                "WHERE occurred_at > now() - interval '24 hours' "
                "GROUP BY 1 ORDER BY 2 DESC LIMIT %(limit)s"
            ).format(table=self._table),
            {"limit": TOP_LIMIT},
        )
        return [IpCount(**row) for row in rows]

    async def recent(self) -> List[RecentEvent]:
        rows = await self._fetch(
            "recent",
            sql.SQL(
                "SELECT occurred_at, method, route, status, latency_ms, "
                "ip_anonymized, ip_full, user_agent "
                "FROM {table} ORDER BY occurred_at DESC LIMIT %(limit)s"
            ).format(table=self._table),
            {"limit": RECENT_LIMIT},
        )
        return [RecentEvent(**row) for row in rows]
