"""Unit tests for MongoEventStore (mocked motor collection, no MongoDB required)."""
from __future__ import annotations

import asyncio
import types
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from relaybus.adapters.mongodb import MongoEventStore
from relaybus.kernel.errors import StorageError
from relaybus.kernel.messaging import StoredEvent
from relaybus.kernel.time import FrozenClock

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _PyMongoError(Exception):
    pass


_ERRORS = types.SimpleNamespace(PyMongoError=_PyMongoError)


class _Cursor:
    """Minimal stand-in for a motor cursor."""

    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self.docs = docs
        self.sort_args: tuple[Any, ...] = ()
        self.limit_arg: int | None = None

    def sort(self, *args: Any) -> _Cursor:
        self.sort_args = args
        return self

    def limit(self, n: int) -> _Cursor:
        self.limit_arg = n
        return self

    def __aiter__(self) -> _Cursor:
        self._it = iter(self.docs)
        return self

    async def __anext__(self) -> dict[str, Any]:
        try:
            return next(self._it)
        except StopIteration:
            raise StopAsyncIteration from None


def _make_collection(docs: list[dict[str, Any]] | None = None) -> tuple[MagicMock, _Cursor]:
    cursor = _Cursor(docs or [])
    col = MagicMock()
    col.insert_one = AsyncMock()
    col.insert_many = AsyncMock()
    col.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
    col.create_index = AsyncMock()
    col.find = MagicMock(return_value=cursor)
    return col, cursor


def _doc(**overrides: Any) -> dict[str, Any]:
    doc = {
        "_id": "evt-1",
        "event_type": "order.placed",
        "payload": "{}",
        "aggregate_id": "o-1",
        "aggregate_type": "Order",
        "occurred_at": T0.replace(tzinfo=None),
        "created_at": T0.replace(tzinfo=None),
        "is_published": False,
        "published_at": None,
        "retry_count": 0,
        "is_failed": False,
        "error_message": None,
        "permanently_failed": False,
        "headers": {"correlation-id": "c-1"},
    }
    doc.update(overrides)
    return doc


@pytest.fixture(autouse=True)
def _pymongo_errors() -> Any:
    with patch("relaybus.adapters.mongodb.event_store._require_pymongo_errors", return_value=_ERRORS):
        yield


# ---------------------------------------------------------------------------
# Indexes and writes
# ---------------------------------------------------------------------------


class TestMongoEventStoreWrites:
    def test_create_indexes(self) -> None:
        col, _ = _make_collection()
        asyncio.run(MongoEventStore.create_indexes(col))
        names = [c.kwargs["name"] for c in col.create_index.call_args_list]
        assert names == [
            "idx_outbox_pending",
            "idx_outbox_aggregate_id",
            "idx_outbox_event_type",
            "idx_outbox_occurred_at",
        ]

    def test_save_event_uses_record_id_as_document_id(self) -> None:
        col, _ = _make_collection()
        record = StoredEvent(event_type="order.placed", payload="{}", aggregate_id="o-1")
        asyncio.run(MongoEventStore(col).save_event(record))
        doc = col.insert_one.call_args.args[0]
        assert doc["_id"] == record.id
        assert doc["is_published"] is False
        assert doc["permanently_failed"] is False

    def test_save_events_without_client_is_one_ordered_insert(self) -> None:
        col, _ = _make_collection()
        records = [StoredEvent(event_type="a", payload="1"), StoredEvent(event_type="b", payload="2")]
        asyncio.run(MongoEventStore(col).save_events(records))
        col.insert_many.assert_awaited_once()
        docs = col.insert_many.call_args.args[0]
        assert [d["_id"] for d in docs] == [r.id for r in records]
        assert col.insert_many.call_args.kwargs == {"ordered": True}

    def test_save_events_with_client_uses_transaction(self) -> None:
        col, _ = _make_collection()
        session = MagicMock()
        txn = MagicMock()
        txn.__aenter__ = AsyncMock(return_value=txn)
        txn.__aexit__ = AsyncMock(return_value=False)
        session.start_transaction = MagicMock(return_value=txn)
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=False)
        client = MagicMock()
        client.start_session = AsyncMock(return_value=session)

        store = MongoEventStore(col, client=client)
        asyncio.run(store.save_events([StoredEvent(event_type="a", payload="1")]))

        session.start_transaction.assert_called_once()
        assert col.insert_many.call_args.kwargs["session"] is session

    def test_save_events_empty_is_noop(self) -> None:
        col, _ = _make_collection()
        asyncio.run(MongoEventStore(col).save_events([]))
        col.insert_many.assert_not_awaited()

    def test_driver_error_becomes_storage_error(self) -> None:
        col, _ = _make_collection()
        col.insert_one = AsyncMock(side_effect=_PyMongoError("duplicate key"))
        with pytest.raises(StorageError) as info:
            asyncio.run(MongoEventStore(col).save_event(StoredEvent(event_type="a", payload="1")))
        assert info.value.backend == "mongodb"


# ---------------------------------------------------------------------------
# Bookkeeping
# ---------------------------------------------------------------------------


class TestMongoEventStoreMarking:
    def test_mark_published_filters_unpublished(self) -> None:
        col, _ = _make_collection()
        store = MongoEventStore(col, clock=FrozenClock(T0))
        asyncio.run(store.mark_published("evt-1"))
        query, update = col.update_one.call_args.args
        assert query == {"_id": "evt-1", "is_published": False}
        assert update["$set"] == {"is_published": True, "published_at": T0, "is_failed": False}

    def test_mark_published_noop_is_logged(self) -> None:
        col, _ = _make_collection()
        col.update_one = AsyncMock(return_value=MagicMock(matched_count=0))
        logger = MagicMock()
        asyncio.run(MongoEventStore(col, logger=logger).mark_published("evt-1"))
        logger.debug.assert_called_once_with("store.mark_published_noop", event_id="evt-1")

    def test_mark_failed_increments_retry_count(self) -> None:
        col, _ = _make_collection()
        asyncio.run(MongoEventStore(col).mark_failed("evt-1", "boom"))
        _, update = col.update_one.call_args.args
        assert update == {"$set": {"is_failed": True, "error_message": "boom"}, "$inc": {"retry_count": 1}}

    def test_mark_failed_permanent_leaves_retry_count(self) -> None:
        col, _ = _make_collection()
        asyncio.run(MongoEventStore(col).mark_failed("evt-1", "gave up", permanent=True))
        _, update = col.update_one.call_args.args
        assert "$inc" not in update
        assert update["$set"]["permanently_failed"] is True


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestMongoEventStoreQueries:
    def test_get_unpublished_sorts_and_limits(self) -> None:
        col, cursor = _make_collection([_doc()])
        [record] = asyncio.run(MongoEventStore(col).get_unpublished(batch_size=10))
        col.find.assert_called_once_with({"is_published": False, "permanently_failed": False})
        assert cursor.sort_args == ("created_at", 1)
        assert cursor.limit_arg == 10
        assert record.id == "evt-1"
        assert record.headers == {"correlation-id": "c-1"}

    def test_naive_dates_are_read_as_utc(self) -> None:
        col, _ = _make_collection([_doc(published_at=T0.replace(tzinfo=None))])
        [record] = asyncio.run(MongoEventStore(col).get_by_aggregate_id("o-1"))
        assert record.occurred_at == T0
        assert record.published_at == T0

    def test_get_by_time_range_query(self) -> None:
        col, cursor = _make_collection()
        end = T0 + timedelta(hours=1)
        asyncio.run(MongoEventStore(col).get_by_time_range(T0, end))
        col.find.assert_called_once_with({"occurred_at": {"$gte": T0, "$lte": end}})
        assert cursor.sort_args == ("occurred_at", 1)
        assert cursor.limit_arg is None

    def test_get_by_type_query(self) -> None:
        col, _ = _make_collection()
        asyncio.run(MongoEventStore(col).get_by_type("order.placed"))
        col.find.assert_called_once_with({"event_type": "order.placed"})

    def test_get_failed_query(self) -> None:
        col, cursor = _make_collection([_doc(permanently_failed=True, retry_count=5)])
        [record] = asyncio.run(MongoEventStore(col).get_failed(limit=3))
        col.find.assert_called_once_with({"permanently_failed": True})
        assert cursor.limit_arg == 3
        assert record.permanently_failed
        assert record.retry_count == 5
