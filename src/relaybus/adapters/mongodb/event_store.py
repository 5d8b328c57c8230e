"""MongoDB adapter — MongoEventStore."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator, Sequence
from datetime import UTC, datetime
from typing import Any

from relaybus.kernel.errors import StorageError
from relaybus.kernel.messaging import EventStore, StoredEvent
from relaybus.kernel.time import Clock, SystemClock
from relaybus.observability.logging import get_logger


def _require_pymongo_errors() -> Any:
    try:
        from pymongo import errors  # type: ignore[import-untyped]
    except ImportError as exc:
        raise ImportError("Install 'relaybus[mongodb]' to use the MongoDB adapter") from exc
    return errors


class MongoEventStore(EventStore):
    """Document-backed outbox store on a motor collection.

    Stores one document per record in the ``outbox_events`` collection,
    keyed by the record id.  Call :meth:`create_indexes` once on startup.

    When *client* is given, :meth:`save_events` writes the batch inside a
    multi-document transaction (requires a replica set); otherwise it issues
    one ordered ``insert_many``.
    """

    COLLECTION_NAME = "outbox_events"

    def __init__(
        self,
        collection: Any,
        *,
        client: Any = None,
        clock: Clock | None = None,
        logger: Any = None,
    ) -> None:
        self._col = collection
        self._client = client
        self._clock = clock or SystemClock()
        self._log = logger or get_logger(__name__)

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    @classmethod
    async def create_indexes(cls, collection: Any) -> None:
        """Create the polling and diagnostic indexes.  Idempotent."""
        await collection.create_index(
            [("is_published", 1), ("permanently_failed", 1), ("created_at", 1)],
            name="idx_outbox_pending",
        )
        await collection.create_index("aggregate_id", name="idx_outbox_aggregate_id")
        await collection.create_index("event_type", name="idx_outbox_event_type")
        await collection.create_index("occurred_at", name="idx_outbox_occurred_at")

    @contextlib.contextmanager
    def _guard(self) -> Iterator[None]:
        errors = _require_pymongo_errors()
        try:
            yield
        except errors.PyMongoError as exc:
            raise StorageError(f"Outbox storage operation failed: {exc}", backend="mongodb", cause=exc) from exc

    # ------------------------------------------------------------------
    # EventStore interface
    # ------------------------------------------------------------------

    async def save_event(self, event: StoredEvent) -> None:
        with self._guard():
            await self._col.insert_one(self._to_doc(event))

    async def save_events(self, events: Sequence[StoredEvent]) -> None:
        if not events:
            return
        docs = [self._to_doc(e) for e in events]
        with self._guard():
            if self._client is None:
                await self._col.insert_many(docs, ordered=True)
                return
            async with await self._client.start_session() as session:
                async with session.start_transaction():
                    await self._col.insert_many(docs, ordered=True, session=session)

    async def get_unpublished(self, batch_size: int = 100) -> list[StoredEvent]:
        query = {"is_published": False, "permanently_failed": False}
        return await self._find(query, sort="created_at", limit=batch_size)

    async def mark_published(self, event_id: str) -> None:
        with self._guard():
            result = await self._col.update_one(
                {"_id": event_id, "is_published": False},
                {
                    "$set": {
                        "is_published": True,
                        "published_at": self._clock.now(),
                        "is_failed": False,
                    }
                },
            )
        if result.matched_count == 0:
            self._log.debug("store.mark_published_noop", event_id=event_id)

    async def mark_failed(self, event_id: str, error_message: str, *, permanent: bool = False) -> None:
        update: dict[str, Any] = {"$set": {"is_failed": True, "error_message": error_message}}
        if permanent:
            update["$set"]["permanently_failed"] = True
        else:
            update["$inc"] = {"retry_count": 1}
        with self._guard():
            result = await self._col.update_one({"_id": event_id, "is_published": False}, update)
        if result.matched_count == 0:
            self._log.debug("store.mark_failed_noop", event_id=event_id)

    async def get_by_aggregate_id(self, aggregate_id: str) -> list[StoredEvent]:
        return await self._find({"aggregate_id": aggregate_id}, sort="occurred_at")

    async def get_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        return await self._find({"occurred_at": {"$gte": start, "$lte": end}}, sort="occurred_at")

    async def get_by_type(self, event_type: str) -> list[StoredEvent]:
        return await self._find({"event_type": event_type}, sort="occurred_at")

    async def get_failed(self, limit: int = 100) -> list[StoredEvent]:
        return await self._find({"permanently_failed": True}, sort="created_at", limit=limit)

    async def _find(self, query: dict[str, Any], *, sort: str, limit: int = 0) -> list[StoredEvent]:
        with self._guard():
            cursor = self._col.find(query).sort(sort, 1)
            if limit:
                cursor = cursor.limit(limit)
            return [self._from_doc(doc) async for doc in cursor]

    # ------------------------------------------------------------------
    # (De)serialisation helpers
    # ------------------------------------------------------------------

    def _to_doc(self, event: StoredEvent) -> dict[str, Any]:
        return {
            "_id": event.id,
            "event_type": event.event_type,
            "payload": event.payload,
            "aggregate_id": event.aggregate_id,
            "aggregate_type": event.aggregate_type,
            "occurred_at": event.occurred_at,
            "created_at": event.created_at,
            "is_published": event.is_published,
            "published_at": event.published_at,
            "retry_count": event.retry_count,
            "is_failed": event.is_failed,
            "error_message": event.error_message,
            "permanently_failed": event.permanently_failed,
            "headers": dict(event.headers),
        }

    def _from_doc(self, doc: dict[str, Any]) -> StoredEvent:
        return StoredEvent(
            id=doc["_id"],
            event_type=doc["event_type"],
            payload=doc.get("payload", ""),
            aggregate_id=doc.get("aggregate_id"),
            aggregate_type=doc.get("aggregate_type"),
            occurred_at=_aware(doc["occurred_at"]),  # type: ignore[arg-type]
            created_at=_aware(doc["created_at"]),  # type: ignore[arg-type]
            is_published=doc.get("is_published", False),
            published_at=_aware(doc.get("published_at")),
            retry_count=doc.get("retry_count", 0),
            is_failed=doc.get("is_failed", False),
            error_message=doc.get("error_message"),
            permanently_failed=doc.get("permanently_failed", False),
            headers=doc.get("headers") or {},
        )


def _aware(value: datetime | None) -> datetime | None:
    # BSON dates come back naive unless the client was built with tz_aware=True.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


__all__ = ["MongoEventStore"]
