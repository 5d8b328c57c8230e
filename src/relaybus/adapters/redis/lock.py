"""Redis adapter – RedisLock."""
from __future__ import annotations

import uuid
from typing import Any

from relaybus.adapters.redis.client import redis_errors_as_storage_error
from relaybus.application.outbox.options import OutboxProcessorOptions
from relaybus.kernel.errors import ApplicationError

_RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""

_EXTEND_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
else
    return 0
end
"""

# Headroom over one record's delivery for its bookkeeping writes.
_BOOKKEEPING_MARGIN_MS = 5_000


class LockNotAcquiredError(ApplicationError):
    default_code = "lock_not_acquired"


class RedisLock:
    """Async distributed lease using Redis ``SET NX PX``.

    Satisfies :class:`~relaybus.application.outbox.LeaderLock`: pass one to
    ``OutboxProcessor(lock=...)`` and only the instance holding the lease runs
    a polling cycle. The processor calls :meth:`extend` after every record,
    so *ttl_ms* only has to outlive a single delivery;
    :meth:`for_options` sizes it from the processor's delivery timeout.
    """

    def __init__(self, client: Any, name: str = "outbox-processor", ttl_ms: int = 60_000) -> None:
        self._client = client
        self._name = f"lock:{name}"
        self._ttl_ms = ttl_ms
        self._token: str | None = None

    @classmethod
    def for_options(
        cls,
        client: Any,
        options: OutboxProcessorOptions,
        name: str = "outbox-processor",
    ) -> RedisLock:
        per_record = options.delivery_timeout_seconds or options.shutdown_timeout_seconds
        ttl_ms = int(per_record * 1000) * 2 + _BOOKKEEPING_MARGIN_MS
        return cls(client, name, ttl_ms=ttl_ms)

    @property
    def key(self) -> str:
        return self._name

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    @property
    def held(self) -> bool:
        return self._token is not None

    async def acquire(self) -> bool:
        token = str(uuid.uuid4())
        with redis_errors_as_storage_error():
            result = await self._client.set(self._name, token, nx=True, px=self._ttl_ms)
        if result:
            self._token = token
            return True
        return False

    async def extend(self) -> bool:
        """Push the lease expiry out by *ttl_ms*; False once the lease is gone."""
        if self._token is None:
            return False
        with redis_errors_as_storage_error():
            renewed = await self._client.eval(_EXTEND_SCRIPT, 1, self._name, self._token, self._ttl_ms)
        if not renewed:
            self._token = None
            return False
        return True

    async def release(self) -> None:
        if self._token is None:
            return
        token, self._token = self._token, None
        with redis_errors_as_storage_error():
            await self._client.eval(_RELEASE_SCRIPT, 1, self._name, token)

    async def __aenter__(self) -> "RedisLock":
        if not await self.acquire():
            raise LockNotAcquiredError(f"Could not acquire lock '{self._name}'")
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.release()


__all__ = ["LockNotAcquiredError", "RedisLock"]
