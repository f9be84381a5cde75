"""
PostgreSQL event store.

Owns the async connection pool shared by the flusher and the dashboard
queries. The table name comes from operator configuration (validated in
DatabaseSettings) and is always composed as an identifier, never as text.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Tuple

import psycopg
import structlog
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from ..config import DatabaseSettings
from ..models.event import EventRecord
from .exceptions import StoreError

logger = structlog.get_logger(__name__)

INSERT_COLUMNS = (
    "event_type",
    "occurred_at",
    "user_id",
    "route",
    "method",
    "status",
    "latency_ms",
    "ip_anonymized",
    "ip_full",
    "user_agent",
    "meta",
)


class EventStore:
    """
    Event table access over a psycopg connection pool.

    Responsibilities:
    - Create the table and its indexes if absent
    - Write a batch of events as one multi-row INSERT
    - Run parameterized reads and return rows as dicts
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        self.settings = settings
        self.table_name = settings.table
        self.table = sql.Identifier(settings.table)
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def open(self) -> None:
        """
        Open the pool without waiting for connections.

        An unreachable database must not block startup; the first flush or
        query will surface the error instead.
        """
        if self._pool is not None:
            return

        kwargs: Dict[str, Any] = {}
        if self.settings.query_timeout_ms:
            kwargs["options"] = f"-c statement_timeout={self.settings.query_timeout_ms}"

        self._pool = AsyncConnectionPool(
            conninfo=self.settings.url,
            min_size=self.settings.pool_min_size,
            max_size=self.settings.pool_max_size,
            timeout=self.settings.pool_timeout_seconds,
            kwargs=kwargs,
            open=False,
            name="webpulse",
        )
        await self._pool.open(wait=False)
        logger.info(
            "Event store opened",
            table=self.table_name,
            pool_max_size=self.settings.pool_max_size,
        )

    async def close(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("Event store closed", table=self.table_name)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        if self._pool is None:
            raise StoreError("Event store is not open", details={"table": self.table_name})
        # The pool commits on clean exit and rolls back on error
        async with self._pool.connection() as conn:
            yield conn

    def schema_statements(self) -> List[sql.Composed]:
        """CREATE TABLE / CREATE INDEX statements, all IF NOT EXISTS."""
        table = self.table_name
        create_table = sql.SQL(
            """
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                occurred_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                event_type TEXT NOT NULL,
                user_id TEXT NULL,
                route TEXT NULL,
                method TEXT NULL,
                status SMALLINT NULL,
                latency_ms INT NULL,
                ip_anonymized TEXT NULL,
                ip_full TEXT NULL,
                user_agent TEXT NULL,
                meta JSONB NULL
            )
            """
        ).format(table=self.table)

        indexes = [
            ("time", sql.SQL("occurred_at DESC")),
            ("type", sql.SQL("event_type")),
            ("route", sql.SQL("route")),
            ("status", sql.SQL("status")),
        ]
        statements = [create_table]
        for suffix, column in indexes:
            statements.append(
                sql.SQL("CREATE INDEX IF NOT EXISTS {index} ON {table} ({column})").format(
                    index=sql.Identifier(f"idx_{table}_{suffix}"),
                    table=self.table,
                    column=column,
                )
            )
        return statements

    async def ensure_schema(self) -> None:
        """Create the event table and indexes. Safe to call repeatedly."""
        try:
            async with self._connection() as conn:
                for statement in self.schema_statements():
                    await conn.execute(statement)
        except psycopg.Error as e:
            raise StoreError(
                f"Failed to ensure table: {e}",
                details={"table": self.table_name, "error_type": type(e).__name__},
            ) from e
        logger.info("Event table ensured", table=self.table_name)

    def build_insert(self, events: Sequence[EventRecord]) -> Tuple[sql.Composed, List[Any]]:
        """One INSERT with a row tuple per event, plus the flat parameter list."""
        row = sql.SQL("({})").format(sql.SQL(", ").join(sql.Placeholder() * len(INSERT_COLUMNS)))
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES {rows}").format(
            table=self.table,
            columns=sql.SQL(", ").join(map(sql.Identifier, INSERT_COLUMNS)),
            rows=sql.SQL(", ").join([row] * len(events)),
        )

        params: List[Any] = []
        for e in events:
            params.extend([
                e.event_type,
                e.occurred_at,
                e.user_id,
                e.route,
                e.method,
                e.status,
                e.latency_ms,
                e.ip_anonymized,
                e.ip_full,
                e.user_agent,
                Jsonb(e.meta) if e.meta is not None else None,
            ])
        return query, params

    async def insert_events(self, events: Sequence[EventRecord]) -> int:
        """Persist a batch in a single statement. Returns the number of rows written."""
        if not events:
            return 0

        query, params = self.build_insert(events)
        try:
            async with self._connection() as conn:
                await conn.execute(query, params)
        except psycopg.Error as e:
            raise StoreError(
                f"Batch insert failed: {e}",
                details={"events": len(events), "error_type": type(e).__name__},
            ) from e
        return len(events)

    async def fetch_all(
        self,
        query: sql.Composable,
        params: Optional[Mapping[str, Any]] = None,
        *,
        name: str,
    ) -> List[Dict[str, Any]]:
        """Run a read query and return all rows as dicts."""
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, params)
                    return await cur.fetchall()
        except psycopg.Error as e:
            raise StoreError(
                f"Query '{name}' failed: {e}",
                details={"query": name, "error_type": type(e).__name__},
            ) from e

    async def ping(self) -> None:
        """Lightweight reachability check. Raises StoreError on failure."""
        try:
            async with self._connection() as conn:
                await conn.execute("SELECT 1")
        except psycopg.Error as e:
            raise StoreError(f"Database ping failed: {e}") from e
