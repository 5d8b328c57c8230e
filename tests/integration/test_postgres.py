"""Integration tests for SqlAlchemyEventStore on PostgreSQL.

Uses testcontainers to spawn a real PostgreSQL instance.
Run with: pytest tests/integration/test_postgres.py -m integration -v
"""
from __future__ import annotations

import asyncio
import dataclasses
from typing import Any, ClassVar

import pytest
from testcontainers.postgres import PostgresContainer

from relaybus.adapters.sqlalchemy import SqlAlchemyEventStore, SqlAlchemySessionFactory
from relaybus.application.bus import EventBus, EventBusMode
from relaybus.application.outbox import OutboxProcessorOptions
from relaybus.application.publisher import InProcessEventPublisher
from relaybus.kernel.events import DomainEvent, EventTypeRegistry
from relaybus.kernel.messaging import StoredEvent
from relaybus.testing.fakes import InMemoryMessageTransport


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _run(coro):  # type: ignore[no-untyped-def]
    return asyncio.run(coro)


def _pg_url(container: Any) -> str:
    """Return an asyncpg-compatible URL from a PostgresContainer."""
    raw = container.get_connection_url()
    # testcontainers returns psycopg2 URL; swap driver for asyncpg
    return raw.replace("psycopg2", "asyncpg", 1)


async def _store(url: str, **kwargs: Any) -> tuple[SqlAlchemySessionFactory, SqlAlchemyEventStore]:
    factory = SqlAlchemySessionFactory(url)
    await SqlAlchemyEventStore.create_table(factory.engine)
    return factory, SqlAlchemyEventStore(factory, **kwargs)


@pytest.fixture(scope="module")
def pg_url() -> str:  # type: ignore[misc]
    with PostgresContainer("postgres:16-alpine") as container:
        yield _pg_url(container)


# ---------------------------------------------------------------------------
# SqlAlchemyEventStore
# ---------------------------------------------------------------------------

@pytest.mark.integration
class TestSqlAlchemyEventStoreIntegration:
    """Real Postgres outbox store tests."""

    def test_lifecycle_round_trip(self, pg_url: str) -> None:
        async def run() -> None:
            factory, store = await _store(pg_url)
            record = StoredEvent(event_type="pg.lifecycle", payload="{}", headers={"correlation-id": "c"})
            await store.save_event(record)

            pending = [e for e in await store.get_unpublished(1000) if e.id == record.id]
            assert pending and pending[0].headers == {"correlation-id": "c"}

            await store.mark_failed(record.id, "boom")
            await store.mark_published(record.id)
            await store.mark_published(record.id)

            [stored] = await store.get_by_type("pg.lifecycle")
            assert stored.is_published
            assert stored.retry_count == 1
            assert stored.published_at is not None and stored.published_at.tzinfo is not None
            await factory.dispose()

        _run(run())

    def test_permanent_failure_lands_in_failed_list(self, pg_url: str) -> None:
        async def run() -> None:
            factory, store = await _store(pg_url)
            record = StoredEvent(event_type="pg.permanent", payload="{}")
            await store.save_event(record)
            await store.mark_failed(record.id, "gave up", permanent=True)

            assert record.id not in {e.id for e in await store.get_unpublished(1000)}
            assert record.id in {e.id for e in await store.get_failed(1000)}
            await factory.dispose()

        _run(run())

    def test_skip_locked_hides_rows_locked_by_another_transaction(self, pg_url: str) -> None:
        async def run() -> None:
            from sqlalchemy import select

            from relaybus.adapters.sqlalchemy import outbox_table

            factory, store = await _store(pg_url, skip_locked=True)
            record = StoredEvent(event_type="pg.locked", payload="{}")
            await store.save_event(record)

            t = outbox_table()
            async with factory() as session:
                async with session.begin():
                    await session.execute(select(t).where(t.c.id == record.id).with_for_update())
                    visible = {e.id for e in await store.get_unpublished(1000)}
                    assert record.id not in visible

            assert record.id in {e.id for e in await store.get_unpublished(1000)}
            await factory.dispose()

        _run(run())


# ---------------------------------------------------------------------------
# EventBus end to end
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True, kw_only=True)
class OrderPlaced(DomainEvent):
    event_type: ClassVar[str] = "pg.order_placed"
    order_id: str = ""


@pytest.mark.integration
class TestPersistentBusIntegration:
    def test_processor_drains_postgres_outbox(self, pg_url: str) -> None:
        registry = EventTypeRegistry()
        registry.register(OrderPlaced, topic="orders")
        transport = InMemoryMessageTransport()
        received: list[DomainEvent] = []

        async def handler(event: OrderPlaced) -> None:
            received.append(event)

        publisher = InProcessEventPublisher()
        publisher.subscribe(OrderPlaced, handler)

        async def run() -> None:
            factory, store = await _store(pg_url)
            bus = EventBus(publisher, mode=EventBusMode.PERSISTENT, store=store, registry=registry)
            await bus.publish(OrderPlaced(aggregate_id="pg-o-1", order_id="o-1"))
            assert received == []

            processor = bus.create_processor(
                transport=transport,
                options=OutboxProcessorOptions(processing_interval_seconds=0.01),
            )
            await processor.process_once()

            [stored] = await bus.get_events_by_aggregate_id("pg-o-1")
            assert stored.is_published
            assert [m.id for m in transport.of_topic("orders")] == [stored.id]
            assert [e.order_id for e in received] == ["o-1"]
            await factory.dispose()

        _run(run())
