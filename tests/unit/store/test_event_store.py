"""
Tests for event store SQL composition.

These run without a database: they check the statements the store would
send, not their execution.
"""

import pytest

from webpulse.config import DatabaseSettings
from webpulse.core.exceptions import StoreError
from webpulse.core.store import INSERT_COLUMNS, EventStore


@pytest.fixture
def store() -> EventStore:
    return EventStore(DatabaseSettings(table="test_events"))


class TestEventStoreSql:
    """Test statement construction."""

    def test_insert_is_single_multi_row_statement(self, store: EventStore, make_event) -> None:
        """Test a batch becomes one INSERT with one row tuple per event."""
        events = [make_event(), make_event(meta={"url": "/x"}), make_event()]

        query, params = store.build_insert(events)
        text = query.as_string(None)

        assert text.startswith('INSERT INTO "test_events"')
        assert text.count("(%s") == 3
        assert text.count("%s") == 3 * len(INSERT_COLUMNS)
        assert len(params) == 3 * len(INSERT_COLUMNS)
        assert params[0] == "request"

    def test_insert_params_follow_column_order(self, store: EventStore, make_event) -> None:
        """Test parameter values line up with INSERT_COLUMNS."""
        event = make_event(route="/r", method="POST", status=201, latency_ms=9, user_id="u1")

        _, params = store.build_insert([event])
        row = dict(zip(INSERT_COLUMNS, params))

        assert row["route"] == "/r"
        assert row["method"] == "POST"
        assert row["status"] == 201
        assert row["latency_ms"] == 9
        assert row["user_id"] == "u1"
        assert row["occurred_at"] == event.occurred_at
        assert row["meta"] is None

    def test_schema_statements(self, store: EventStore) -> None:
        """Test the table and its four indexes are created idempotently."""
        statements = [s.as_string(None) for s in store.schema_statements()]

        assert len(statements) == 5
        assert all("IF NOT EXISTS" in s for s in statements)
        assert '"test_events"' in statements[0]
        assert "BIGSERIAL" in statements[0]
        for suffix in ("time", "type", "route", "status"):
            assert any(f'"idx_test_events_{suffix}"' in s for s in statements[1:])

    @pytest.mark.asyncio
    async def test_operations_require_open_store(self, store: EventStore, make_event) -> None:
        """Test using a closed store raises StoreError."""
        assert store.is_open is False
        with pytest.raises(StoreError):
            await store.insert_events([make_event()])

    @pytest.mark.asyncio
    async def test_insert_nothing(self, store: EventStore) -> None:
        """Test an empty batch writes nothing and needs no connection."""
        assert await store.insert_events([]) == 0

    def test_index_names_fit_identifier_limit(self) -> None:
        """Test the longest allowed table name keeps all four index names distinct and untruncated."""
        store = EventStore(DatabaseSettings(table="t" * 50))

        index_names = [s.as_string(None).split('"')[1] for s in store.schema_statements()[1:]]

        assert len(set(index_names)) == 4
        assert all(len(name) <= 63 for name in index_names)
