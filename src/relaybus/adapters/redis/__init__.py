"""Redis adapter – outbox event store and leader lease."""
from relaybus.adapters.redis.client import create_redis_client
from relaybus.adapters.redis.event_store import RedisEventStore
from relaybus.adapters.redis.lock import LockNotAcquiredError, RedisLock

__all__ = ["LockNotAcquiredError", "RedisEventStore", "RedisLock", "create_redis_client"]
