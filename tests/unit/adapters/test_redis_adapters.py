"""Unit tests for Redis adapters (event store, lock, client) — no running Redis required."""
from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from relaybus.adapters.redis import LockNotAcquiredError, RedisEventStore, RedisLock, create_redis_client
from relaybus.application.outbox import OutboxProcessorOptions
from relaybus.kernel.errors import StorageError
from relaybus.kernel.messaging import StoredEvent
from relaybus.kernel.time import FrozenClock

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_pipeline_mock() -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    return pipe


def _make_client() -> tuple[MagicMock, MagicMock]:
    """Return (mock_client, mock_pipeline)."""
    pipe = _make_pipeline_mock()
    client = MagicMock()
    client.pipeline = MagicMock(return_value=pipe)
    client.get = AsyncMock(return_value=None)
    client.mget = AsyncMock(return_value=[])
    client.zrange = AsyncMock(return_value=[])
    client.zrangebyscore = AsyncMock(return_value=[])
    client.set = AsyncMock(return_value=True)
    client.eval = AsyncMock(return_value=1)
    return client, pipe


def _record(**kwargs: Any) -> StoredEvent:
    return StoredEvent(
        id=kwargs.pop("id", "evt-1"),
        event_type=kwargs.pop("event_type", "order.placed"),
        payload="{}",
        created_at=T0,
        occurred_at=T0 + timedelta(seconds=5),
        **kwargs,
    )


def _raw(record: StoredEvent) -> str:
    return json.dumps(record.to_dict())


# ---------------------------------------------------------------------------
# RedisEventStore – writes
# ---------------------------------------------------------------------------


class TestRedisEventStoreSave:
    def test_save_event_writes_document_and_indexes(self) -> None:
        async def run() -> None:
            client, pipe = _make_client()
            store = RedisEventStore(client)
            await store.save_event(_record(aggregate_id="o-1"))

            client.pipeline.assert_called_once_with(transaction=True)
            key, body = pipe.set.call_args.args
            assert key == "outbox:event:evt-1"
            assert json.loads(body)["id"] == "evt-1"
            assert pipe.set.call_args.kwargs == {"ex": None}
            zadds = {c.args[0]: c.args[1] for c in pipe.zadd.call_args_list}
            assert zadds["outbox:unpublished"] == {"evt-1": T0.timestamp()}
            assert zadds["outbox:timeline"] == {"evt-1": (T0 + timedelta(seconds=5)).timestamp()}
            assert "outbox:aggregate:o-1" in zadds
            assert "outbox:type:order.placed" in zadds
            assert "outbox:failed" not in zadds
            pipe.execute.assert_awaited_once()
        asyncio.run(run())

    def test_save_events_share_one_transaction(self) -> None:
        async def run() -> None:
            client, pipe = _make_client()
            store = RedisEventStore(client, key_prefix="app", event_ttl_seconds=3600)
            await store.save_events([_record(id="a"), _record(id="b")])
            client.pipeline.assert_called_once()
            assert [c.args[0] for c in pipe.set.call_args_list] == ["app:event:a", "app:event:b"]
            assert all(c.kwargs == {"ex": 3600} for c in pipe.set.call_args_list)
            pipe.execute.assert_awaited_once()
        asyncio.run(run())

    def test_save_events_empty_is_noop(self) -> None:
        client, _ = _make_client()
        asyncio.run(RedisEventStore(client).save_events([]))
        client.pipeline.assert_not_called()

    def test_redis_error_becomes_storage_error(self) -> None:
        async def run() -> None:
            client, pipe = _make_client()
            pipe.execute = AsyncMock(side_effect=RedisConnectionError("refused"))
            with pytest.raises(StorageError) as info:
                await RedisEventStore(client).save_event(_record())
            assert info.value.backend == "redis"
        asyncio.run(run())


# ---------------------------------------------------------------------------
# RedisEventStore – polling and bookkeeping
# ---------------------------------------------------------------------------


class TestRedisEventStorePolling:
    def test_get_unpublished_reads_queue_in_order(self) -> None:
        async def run() -> None:
            client, pipe = _make_client()
            first, second = _record(id="a"), _record(id="b")
            client.zrange = AsyncMock(return_value=["a", "b"])
            client.mget = AsyncMock(return_value=[_raw(first), _raw(second)])
            events = await RedisEventStore(client).get_unpublished(batch_size=2)
            client.zrange.assert_awaited_once_with("outbox:unpublished", 0, 1)
            client.mget.assert_awaited_once_with(["outbox:event:a", "outbox:event:b"])
            assert [e.id for e in events] == ["a", "b"]
            client.pipeline.assert_not_called()
        asyncio.run(run())

    def test_get_unpublished_prunes_stale_and_expired(self) -> None:
        async def run() -> None:
            client, pipe = _make_client()
            done = _record(id="a", is_published=True)
            client.zrange = AsyncMock(return_value=[b"a", b"b", b"c"])
            client.mget = AsyncMock(return_value=[_raw(done), None, _raw(_record(id="c"))])
            logger = MagicMock()
            events = await RedisEventStore(client, logger=logger).get_unpublished()
            assert [e.id for e in events] == ["c"]
            logger.debug.assert_any_call("store.index_entry_expired", event_id="b")
            zrems = [c.args for c in pipe.zrem.call_args_list]
            assert ("outbox:unpublished", "b", "a") in zrems
            assert ("outbox:timeline", "b") in zrems
            pipe.execute.assert_awaited_once()
        asyncio.run(run())

    def test_expired_queue_head_does_not_starve_later_records(self) -> None:
        async def run() -> None:
            client, pipe = _make_client()
            fresh = _record(id="fresh")
            client.zrange = AsyncMock(side_effect=[["old0", "old1"], ["fresh"]])
            client.mget = AsyncMock(side_effect=[[None, None], [_raw(fresh)]])
            store = RedisEventStore(client, event_ttl_seconds=60)

            events = await store.get_unpublished(batch_size=2)

            assert [e.id for e in events] == ["fresh"]
            # Pruned entries shift the queue, so the second read starts at 0 again.
            assert [c.args for c in client.zrange.await_args_list] == [
                ("outbox:unpublished", 0, 1),
                ("outbox:unpublished", 0, 1),
            ]
            pipe.zrem.assert_any_call("outbox:unpublished", "old0", "old1")
        asyncio.run(run())

    def test_get_unpublished_keeps_reading_past_pruned_window(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            client.zrange = AsyncMock(side_effect=[["gone", "a"], ["b", "c"]])
            client.mget = AsyncMock(
                side_effect=[[None, _raw(_record(id="a"))], [_raw(_record(id="b")), _raw(_record(id="c"))]]
            )
            events = await RedisEventStore(client).get_unpublished(batch_size=2)
            assert [e.id for e in events] == ["a", "b"]
            assert client.zrange.await_args_list[1].args == ("outbox:unpublished", 1, 2)
        asyncio.run(run())

    def test_mark_published_runs_atomic_script(self) -> None:
        async def run() -> None:
            client, pipe = _make_client()
            await RedisEventStore(client, clock=FrozenClock(T0)).mark_published("evt-1")
            script, numkeys, *rest = client.eval.await_args.args
            assert "cjson.decode" in script
            assert numkeys == 2
            assert rest == ["outbox:event:evt-1", "outbox:unpublished", "evt-1", T0.isoformat(), 0]
            client.get.assert_not_awaited()
            client.pipeline.assert_not_called()
        asyncio.run(run())

    def test_mark_published_noop_is_logged(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            client.eval = AsyncMock(return_value=0)
            logger = MagicMock()
            await RedisEventStore(client, logger=logger).mark_published("evt-1")
            logger.debug.assert_called_once_with("store.mark_published_noop", event_id="evt-1")
        asyncio.run(run())

    def test_mark_failed_passes_retry_arguments(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            store = RedisEventStore(client, event_ttl_seconds=3600, clock=FrozenClock(T0))
            await store.mark_failed("evt-1", "timeout")
            _, numkeys, *rest = client.eval.await_args.args
            assert numkeys == 3
            assert rest == [
                "outbox:event:evt-1",
                "outbox:unpublished",
                "outbox:failed",
                "evt-1",
                "timeout",
                "0",
                3600,
                T0.timestamp(),
            ]
        asyncio.run(run())

    def test_mark_failed_permanent_flag(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            await RedisEventStore(client).mark_failed("evt-1", "gave up", permanent=True)
            args = client.eval.await_args.args
            assert args[7] == "1"
            assert "ZADD" in args[0]
        asyncio.run(run())

    def test_mark_failed_unknown_id_is_noop(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            client.eval = AsyncMock(return_value=0)
            logger = MagicMock()
            await RedisEventStore(client, logger=logger).mark_failed("missing", "x")
            logger.debug.assert_called_once_with("store.mark_failed_noop", event_id="missing")
        asyncio.run(run())

    def test_script_error_becomes_storage_error(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            client.eval = AsyncMock(side_effect=RedisConnectionError("refused"))
            with pytest.raises(StorageError):
                await RedisEventStore(client).mark_published("evt-1")
        asyncio.run(run())


# ---------------------------------------------------------------------------
# RedisEventStore – diagnostics
# ---------------------------------------------------------------------------


class TestRedisEventStoreQueries:
    def test_get_by_aggregate_id(self) -> None:
        client, _ = _make_client()
        asyncio.run(RedisEventStore(client).get_by_aggregate_id("o-1"))
        client.zrange.assert_awaited_once_with("outbox:aggregate:o-1", 0, -1)
        client.mget.assert_not_awaited()

    def test_get_by_type(self) -> None:
        client, _ = _make_client()
        asyncio.run(RedisEventStore(client).get_by_type("order.placed"))
        client.zrange.assert_awaited_once_with("outbox:type:order.placed", 0, -1)

    def test_get_by_time_range_uses_scores(self) -> None:
        client, _ = _make_client()
        end = T0 + timedelta(minutes=1)
        asyncio.run(RedisEventStore(client).get_by_time_range(T0, end))
        client.zrangebyscore.assert_awaited_once_with("outbox:timeline", T0.timestamp(), end.timestamp())

    def test_get_failed_respects_limit(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            client.zrange = AsyncMock(return_value=["evt-1"])
            client.mget = AsyncMock(return_value=[_raw(_record(permanently_failed=True))])
            [failed] = await RedisEventStore(client).get_failed(limit=10)
            client.zrange.assert_awaited_once_with("outbox:failed", 0, 9)
            assert failed.permanently_failed
        asyncio.run(run())


# ---------------------------------------------------------------------------
# RedisLock
# ---------------------------------------------------------------------------


class TestRedisLock:
    def test_acquire_uses_set_nx_px(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            lock = RedisLock(client, "outbox", ttl_ms=5000)
            assert await lock.acquire() is True
            assert lock.held
            args, kwargs = client.set.call_args
            assert args[0] == "lock:outbox"
            assert kwargs == {"nx": True, "px": 5000}
        asyncio.run(run())

    def test_acquire_fails_when_held_elsewhere(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            client.set = AsyncMock(return_value=None)
            lock = RedisLock(client)
            assert await lock.acquire() is False
            assert not lock.held
        asyncio.run(run())

    def test_release_runs_compare_and_delete(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            lock = RedisLock(client)
            await lock.acquire()
            token = client.set.call_args.args[1]
            await lock.release()
            _, numkeys, key, arg = client.eval.call_args.args
            assert (numkeys, key, arg) == (1, "lock:outbox-processor", token)
            assert not lock.held
        asyncio.run(run())

    def test_release_without_acquire_is_noop(self) -> None:
        client, _ = _make_client()
        asyncio.run(RedisLock(client).release())
        client.eval.assert_not_awaited()

    def test_context_manager_raises_when_not_acquired(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            client.set = AsyncMock(return_value=None)
            with pytest.raises(LockNotAcquiredError):
                async with RedisLock(client):
                    pass
        asyncio.run(run())

    def test_context_manager_releases(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            async with RedisLock(client) as lock:
                assert lock.held
            client.eval.assert_awaited_once()
        asyncio.run(run())

    def test_extend_renews_own_lease(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            lock = RedisLock(client, "outbox", ttl_ms=5000)
            await lock.acquire()
            token = client.set.call_args.args[1]
            assert await lock.extend() is True
            script, numkeys, key, arg, ttl = client.eval.await_args.args
            assert "PEXPIRE" in script
            assert (numkeys, key, arg, ttl) == (1, "lock:outbox", token, 5000)
            assert lock.held
        asyncio.run(run())

    def test_extend_reports_lost_lease(self) -> None:
        async def run() -> None:
            client, _ = _make_client()
            lock = RedisLock(client)
            await lock.acquire()
            client.eval = AsyncMock(return_value=0)
            assert await lock.extend() is False
            assert not lock.held
        asyncio.run(run())

    def test_extend_without_lease_is_false(self) -> None:
        client, _ = _make_client()
        assert asyncio.run(RedisLock(client).extend()) is False
        client.eval.assert_not_awaited()

    def test_default_ttl_outlives_default_delivery_timeout(self) -> None:
        client, _ = _make_client()
        options = OutboxProcessorOptions()
        assert RedisLock(client).ttl_ms > options.delivery_timeout_seconds * 1000

    def test_for_options_sizes_ttl_from_delivery_timeout(self) -> None:
        client, _ = _make_client()
        lock = RedisLock.for_options(client, OutboxProcessorOptions(delivery_timeout_seconds=90))
        assert lock.ttl_ms == 185_000
        unbounded = RedisLock.for_options(
            client, OutboxProcessorOptions(delivery_timeout_seconds=None, shutdown_timeout_seconds=10)
        )
        assert unbounded.ttl_ms == 25_000


# ---------------------------------------------------------------------------
# Client helper
# ---------------------------------------------------------------------------


class TestCreateRedisClient:
    def test_decodes_responses_by_default(self) -> None:
        mock_aioredis = MagicMock()
        with patch("relaybus.adapters.redis.client._require_redis", return_value=mock_aioredis):
            create_redis_client("redis://localhost:6379/0")
        mock_aioredis.from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)

    def test_import_error_names_extra(self) -> None:
        with patch(
            "relaybus.adapters.redis.client._require_redis",
            side_effect=ImportError("Install 'relaybus[redis]'"),
        ):
            with pytest.raises(ImportError, match="redis"):
                create_redis_client("redis://localhost")
