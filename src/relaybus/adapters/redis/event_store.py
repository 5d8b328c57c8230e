"""Redis adapter – RedisEventStore."""
from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from relaybus.adapters.redis.client import as_text, redis_errors_as_storage_error
from relaybus.kernel.messaging import EventStore, StoredEvent
from relaybus.kernel.time import Clock, SystemClock
from relaybus.observability.logging import get_logger

# Record updates run server-side so concurrent writers never overwrite each
# other with stale copies. KEYS[1] is the event document.
_MARK_PUBLISHED_SCRIPT = """
local raw = redis.call("GET", KEYS[1])
if not raw then
    redis.call("ZREM", KEYS[2], ARGV[1])
    return 0
end
local doc = cjson.decode(raw)
if doc["is_published"] == true then
    return 0
end
doc["is_published"] = true
doc["published_at"] = ARGV[2]
doc["is_failed"] = false
local body = cjson.encode(doc)
if tonumber(ARGV[3]) > 0 then
    redis.call("SET", KEYS[1], body, "EX", ARGV[3])
else
    redis.call("SET", KEYS[1], body, "KEEPTTL")
end
redis.call("ZREM", KEYS[2], ARGV[1])
return 1
"""

_MARK_FAILED_SCRIPT = """
local raw = redis.call("GET", KEYS[1])
if not raw then
    return 0
end
local doc = cjson.decode(raw)
if doc["is_published"] == true then
    return 0
end
doc["is_failed"] = true
doc["error_message"] = ARGV[2]
local permanent = ARGV[3] == "1"
if permanent then
    doc["permanently_failed"] = true
else
    doc["retry_count"] = (tonumber(doc["retry_count"]) or 0) + 1
end
local body = cjson.encode(doc)
if tonumber(ARGV[4]) > 0 then
    redis.call("SET", KEYS[1], body, "EX", ARGV[4])
else
    redis.call("SET", KEYS[1], body, "KEEPTTL")
end
if permanent then
    local score = redis.call("ZSCORE", KEYS[2], ARGV[1]) or ARGV[5]
    redis.call("ZREM", KEYS[2], ARGV[1])
    redis.call("ZADD", KEYS[3], score, ARGV[1])
end
return 1
"""


class RedisEventStore(EventStore):
    """Key-value outbox store on ``redis.asyncio``.

    Layout (``outbox`` is the default *key_prefix*)::

        outbox:event:<id>          JSON document, optional TTL
        outbox:unpublished         zset id -> created_at   (polling queue)
        outbox:failed              zset id -> created_at   (permanently failed)
        outbox:timeline            zset id -> occurred_at
        outbox:aggregate:<id>      zset id -> occurred_at
        outbox:type:<event_type>   zset id -> occurred_at

    Saves touching several keys go through a ``MULTI``/``EXEC`` pipeline.
    ``mark_published`` and ``mark_failed`` run as Lua scripts that update
    the stored document in place, so they are safe to call concurrently.
    Redis is volatile unless AOF/RDB persistence is enabled on the server.
    """

    def __init__(
        self,
        client: Any,
        *,
        key_prefix: str = "outbox",
        event_ttl_seconds: int | None = None,
        clock: Clock | None = None,
        logger: Any = None,
    ) -> None:
        self._client = client
        self._prefix = key_prefix
        self._ttl = event_ttl_seconds or None
        self._clock = clock or SystemClock()
        self._log = logger or get_logger(__name__)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _event_key(self, event_id: str) -> str:
        return f"{self._prefix}:event:{event_id}"

    @property
    def _unpublished_key(self) -> str:
        return f"{self._prefix}:unpublished"

    @property
    def _failed_key(self) -> str:
        return f"{self._prefix}:failed"

    @property
    def _timeline_key(self) -> str:
        return f"{self._prefix}:timeline"

    def _aggregate_key(self, aggregate_id: str) -> str:
        return f"{self._prefix}:aggregate:{aggregate_id}"

    def _type_key(self, event_type: str) -> str:
        return f"{self._prefix}:type:{event_type}"

    # ------------------------------------------------------------------
    # EventStore interface
    # ------------------------------------------------------------------

    async def save_event(self, event: StoredEvent) -> None:
        await self.save_events([event])

    async def save_events(self, events: Sequence[StoredEvent]) -> None:
        if not events:
            return
        with redis_errors_as_storage_error():
            async with self._client.pipeline(transaction=True) as pipe:
                for event in events:
                    self._queue_save(pipe, event)
                await pipe.execute()
        self._log.debug("store.saved", backend="redis", count=len(events))

    def _queue_save(self, pipe: Any, event: StoredEvent) -> None:
        created = event.created_at.timestamp()
        occurred = event.occurred_at.timestamp()
        pipe.set(self._event_key(event.id), _dumps(event), ex=self._ttl)
        if event.is_pending:
            pipe.zadd(self._unpublished_key, {event.id: created})
        if event.permanently_failed:
            pipe.zadd(self._failed_key, {event.id: created})
        pipe.zadd(self._timeline_key, {event.id: occurred})
        if event.aggregate_id:
            pipe.zadd(self._aggregate_key(event.aggregate_id), {event.id: occurred})
        pipe.zadd(self._type_key(event.event_type), {event.id: occurred})

    async def get_unpublished(self, batch_size: int = 100) -> list[StoredEvent]:
        """Read the queue head, pruning entries whose record expired or settled.

        Pruned entries free their slots, so reading continues until the batch
        is full or the queue is exhausted.
        """
        pending: list[StoredEvent] = []
        start = 0
        while len(pending) < batch_size:
            with redis_errors_as_storage_error():
                ids = await self._client.zrange(self._unpublished_key, start, start + batch_size - 1)
            if not ids:
                break
            events, missing = await self._fetch(ids)
            settled = [e.id for e in events if not e.is_pending]
            if missing or settled:
                await self._prune(missing, settled)
            pending.extend(e for e in events if e.is_pending)
            if len(ids) < batch_size:
                break
            start += len(ids) - len(missing) - len(settled)
        return pending[:batch_size]

    async def mark_published(self, event_id: str) -> None:
        published_at = self._clock.now().isoformat()
        with redis_errors_as_storage_error():
            changed = await self._client.eval(
                _MARK_PUBLISHED_SCRIPT,
                2,
                self._event_key(event_id),
                self._unpublished_key,
                event_id,
                published_at,
                self._ttl or 0,
            )
        if not changed:
            self._log.debug("store.mark_published_noop", event_id=event_id)

    async def mark_failed(self, event_id: str, error_message: str, *, permanent: bool = False) -> None:
        with redis_errors_as_storage_error():
            changed = await self._client.eval(
                _MARK_FAILED_SCRIPT,
                3,
                self._event_key(event_id),
                self._unpublished_key,
                self._failed_key,
                event_id,
                error_message,
                "1" if permanent else "0",
                self._ttl or 0,
                self._clock.now().timestamp(),
            )
        if not changed:
            self._log.debug("store.mark_failed_noop", event_id=event_id)

    async def get_by_aggregate_id(self, aggregate_id: str) -> list[StoredEvent]:
        with redis_errors_as_storage_error():
            ids = await self._client.zrange(self._aggregate_key(aggregate_id), 0, -1)
        return await self._load(ids)

    async def get_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        with redis_errors_as_storage_error():
            ids = await self._client.zrangebyscore(self._timeline_key, start.timestamp(), end.timestamp())
        return await self._load(ids)

    async def get_by_type(self, event_type: str) -> list[StoredEvent]:
        with redis_errors_as_storage_error():
            ids = await self._client.zrange(self._type_key(event_type), 0, -1)
        return await self._load(ids)

    async def get_failed(self, limit: int = 100) -> list[StoredEvent]:
        with redis_errors_as_storage_error():
            ids = await self._client.zrange(self._failed_key, 0, limit - 1)
        return await self._load(ids)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fetch(self, ids: Iterable[Any]) -> tuple[list[StoredEvent], list[str]]:
        """Load documents for *ids*; also return the ids whose document expired."""
        ids = [as_text(i) for i in ids]
        if not ids:
            return [], []
        with redis_errors_as_storage_error():
            raws = await self._client.mget([self._event_key(i) for i in ids])
        events: list[StoredEvent] = []
        missing: list[str] = []
        for event_id, raw in zip(ids, raws):
            if raw is None:
                # Document expired through its TTL; the index entry is stale.
                self._log.debug("store.index_entry_expired", event_id=event_id)
                missing.append(event_id)
                continue
            events.append(_loads(raw))
        return events, missing

    async def _load(self, ids: Iterable[Any]) -> list[StoredEvent]:
        events, _ = await self._fetch(ids)
        return events

    async def _prune(self, missing: list[str], settled: list[str]) -> None:
        with redis_errors_as_storage_error():
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.zrem(self._unpublished_key, *missing, *settled)
                if missing:
                    pipe.zrem(self._timeline_key, *missing)
                    pipe.zrem(self._failed_key, *missing)
                await pipe.execute()
        self._log.debug("store.queue_pruned", expired=len(missing), settled=len(settled))


def _dumps(event: StoredEvent) -> str:
    return json.dumps(event.to_dict(), separators=(",", ":"))


def _loads(raw: Any) -> StoredEvent:
    return StoredEvent.from_dict(json.loads(as_text(raw)))


__all__ = ["RedisEventStore"]
