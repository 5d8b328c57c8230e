"""Redis adapter – client helpers."""
from __future__ import annotations

import contextlib
from collections.abc import Iterator
from typing import Any

from relaybus.kernel.errors import StorageError


def _require_redis() -> Any:
    try:
        import redis.asyncio as aioredis
        return aioredis
    except ImportError as exc:
        raise ImportError("Install 'relaybus[redis]' to use the Redis adapter") from exc


def create_redis_client(url: str, **kwargs: Any) -> Any:
    """Build a ``redis.asyncio.Redis`` client returning ``str`` values."""
    aioredis = _require_redis()
    kwargs.setdefault("decode_responses", True)
    return aioredis.from_url(url, **kwargs)


@contextlib.contextmanager
def redis_errors_as_storage_error() -> Iterator[None]:
    _require_redis()
    from redis.exceptions import RedisError

    try:
        yield
    except RedisError as exc:
        raise StorageError(f"Outbox storage operation failed: {exc}", backend="redis", cause=exc) from exc


def as_text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else value


__all__ = ["as_text", "create_redis_client", "redis_errors_as_storage_error"]
