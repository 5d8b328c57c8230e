"""Adapters – build the configured EventStore backend."""
from __future__ import annotations

from typing import Any

from relaybus.config import RelaybusSettings
from relaybus.config.validation import InvalidSettingValueError
from relaybus.kernel.messaging import EventStore
from relaybus.observability.logging import get_logger

logger = get_logger(__name__)


def create_event_store(settings: RelaybusSettings, **clients: Any) -> EventStore:
    """Return the :class:`EventStore` selected by ``settings.store_backend``.

    Pre-built driver objects may be passed to reuse existing connections:
    ``session_factory`` (sqlalchemy), ``collection``/``client`` (mongodb),
    ``client`` (redis). Otherwise one is created from ``settings.store_url``.
    """
    backend = settings.store_backend
    logger.info("store.creating", **settings.safe_dict())

    if backend == "memory":
        from relaybus.testing.fakes import InMemoryEventStore

        return InMemoryEventStore()

    if backend == "sqlalchemy":
        from relaybus.adapters.sqlalchemy import SqlAlchemyEventStore, SqlAlchemySessionFactory

        session_factory = clients.get("session_factory") or SqlAlchemySessionFactory(settings.store_url)
        return SqlAlchemyEventStore(session_factory, skip_locked=clients.get("skip_locked", False))

    if backend == "mongodb":
        from relaybus.adapters.mongodb import MongoEventStore

        collection = clients.get("collection")
        client = clients.get("client")
        if collection is None:
            client = client or _mongo_client(settings.store_url)
            collection = client.get_default_database()[MongoEventStore.COLLECTION_NAME]
        return MongoEventStore(collection, client=client)

    if backend == "redis":
        from relaybus.adapters.redis import RedisEventStore, create_redis_client

        client = clients.get("client") or create_redis_client(settings.store_url)
        return RedisEventStore(client, event_ttl_seconds=settings.redis_event_ttl_seconds or None)

    raise InvalidSettingValueError("store_backend", backend, "unsupported backend")


def _mongo_client(url: str) -> Any:
    try:
        from motor.motor_asyncio import AsyncIOMotorClient  # type: ignore[import-untyped]
    except ImportError as exc:
        raise ImportError("Install 'relaybus[mongodb]' to use the MongoDB adapter") from exc
    return AsyncIOMotorClient(url, tz_aware=True)


__all__ = ["create_event_store"]
