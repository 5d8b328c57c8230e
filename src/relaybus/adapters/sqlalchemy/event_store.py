"""SQLAlchemy adapter – SqlAlchemyEventStore."""
from __future__ import annotations

import contextlib
import functools
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime
from typing import Any

from relaybus.adapters.sqlalchemy.session import _require_sqlalchemy
from relaybus.kernel.errors import StorageError
from relaybus.kernel.messaging import EventStore, StoredEvent
from relaybus.kernel.time import Clock, SystemClock
from relaybus.observability.logging import get_logger

TABLE_NAME = "outbox_events"


@functools.lru_cache(maxsize=1)
def outbox_table() -> Any:
    """Return the ``outbox_events`` :class:`~sqlalchemy.Table` (built once)."""
    _require_sqlalchemy()
    from sqlalchemy import (  # type: ignore[import-untyped]
        JSON,
        Boolean,
        Column,
        DateTime,
        Index,
        Integer,
        MetaData,
        String,
        Table,
        Text,
    )

    meta = MetaData()
    return Table(
        TABLE_NAME,
        meta,
        Column("id", String(64), primary_key=True),
        Column("event_type", String(256), nullable=False),
        Column("payload", Text, nullable=False),
        Column("aggregate_id", String(256), nullable=True),
        Column("aggregate_type", String(256), nullable=True),
        Column("occurred_at", DateTime(timezone=True), nullable=False),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("is_published", Boolean, nullable=False, default=False),
        Column("published_at", DateTime(timezone=True), nullable=True),
        Column("retry_count", Integer, nullable=False, default=0),
        Column("is_failed", Boolean, nullable=False, default=False),
        Column("error_message", Text, nullable=True),
        Column("permanently_failed", Boolean, nullable=False, default=False),
        Column("headers", JSON, nullable=False, default=dict),
        Index("ix_outbox_events_pending", "is_published", "permanently_failed", "created_at"),
        Index("ix_outbox_events_aggregate_id", "aggregate_id"),
        Index("ix_outbox_events_event_type", "event_type"),
        Index("ix_outbox_events_occurred_at", "occurred_at"),
    )


class SqlAlchemyEventStore(EventStore):
    """Relational outbox store over a single ``outbox_events`` table.

    Every operation runs in its own transaction obtained from
    *session_factory* (any zero-argument callable returning an
    :class:`~sqlalchemy.ext.asyncio.AsyncSession`, such as
    :class:`~relaybus.adapters.sqlalchemy.session.SqlAlchemySessionFactory`).

    The store **does not** migrate the table automatically.  Call
    :meth:`create_table` once (e.g. in app startup or an Alembic migration)
    before using it.

    Parameters
    ----------
    session_factory:
        Callable returning a new async session.
    skip_locked:
        Add ``FOR UPDATE SKIP LOCKED`` to the polling query so concurrent
        processors on PostgreSQL/MySQL do not read rows another transaction
        has locked. Ignored by SQLite.
    """

    TABLE_NAME = TABLE_NAME

    def __init__(
        self,
        session_factory: Any,
        *,
        skip_locked: bool = False,
        clock: Clock | None = None,
        logger: Any = None,
    ) -> None:
        self._session_factory = session_factory
        self._skip_locked = skip_locked
        self._clock = clock or SystemClock()
        self._log = logger or get_logger(__name__)

    # ------------------------------------------------------------------
    # Schema helpers
    # ------------------------------------------------------------------

    @classmethod
    async def create_table(cls, bind: Any) -> None:
        """Create the ``outbox_events`` table and its indexes if missing.

        Parameters
        ----------
        bind:
            An :class:`~sqlalchemy.ext.asyncio.AsyncEngine` or synchronous
            :class:`~sqlalchemy.engine.Engine`.
        """
        meta = outbox_table().metadata
        try:
            async with bind.begin() as conn:
                await conn.run_sync(meta.create_all)
        except AttributeError:
            meta.create_all(bind)

    @contextlib.asynccontextmanager
    async def _transaction(self) -> AsyncIterator[Any]:
        from sqlalchemy.exc import SQLAlchemyError  # type: ignore[import-untyped]

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Outbox storage operation failed: {exc}", backend="sqlalchemy", cause=exc) from exc

    # ------------------------------------------------------------------
    # EventStore interface
    # ------------------------------------------------------------------

    async def save_event(self, event: StoredEvent) -> None:
        await self.save_events([event])

    async def save_events(self, events: Sequence[StoredEvent]) -> None:
        if not events:
            return
        from sqlalchemy import insert  # type: ignore[import-untyped]

        rows = [_event_to_row(e) for e in events]
        async with self._transaction() as session:
            await session.execute(insert(outbox_table()), rows)

    async def get_unpublished(self, batch_size: int = 100) -> list[StoredEvent]:
        from sqlalchemy import select  # type: ignore[import-untyped]

        t = outbox_table()
        stmt = (
            select(t)
            .where(t.c.is_published.is_(False), t.c.permanently_failed.is_(False))
            .order_by(t.c.created_at.asc())
            .limit(batch_size)
        )
        if self._skip_locked:
            stmt = stmt.with_for_update(skip_locked=True)
        return await self._fetch(stmt)

    async def mark_published(self, event_id: str) -> None:
        from sqlalchemy import update  # type: ignore[import-untyped]

        t = outbox_table()
        stmt = (
            update(t)
            .where(t.c.id == event_id, t.c.is_published.is_(False))
            .values(is_published=True, published_at=_utc(self._clock.now()), is_failed=False)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
        if result.rowcount == 0:
            self._log.debug("store.mark_published_noop", event_id=event_id)

    async def mark_failed(self, event_id: str, error_message: str, *, permanent: bool = False) -> None:
        from sqlalchemy import update  # type: ignore[import-untyped]

        t = outbox_table()
        values: dict[str, Any] = {"is_failed": True, "error_message": error_message}
        if permanent:
            values["permanently_failed"] = True
        else:
            values["retry_count"] = t.c.retry_count + 1
        stmt = update(t).where(t.c.id == event_id, t.c.is_published.is_(False)).values(**values)
        async with self._transaction() as session:
            result = await session.execute(stmt)
        if result.rowcount == 0:
            self._log.debug("store.mark_failed_noop", event_id=event_id)

    async def get_by_aggregate_id(self, aggregate_id: str) -> list[StoredEvent]:
        from sqlalchemy import select  # type: ignore[import-untyped]

        t = outbox_table()
        return await self._fetch(select(t).where(t.c.aggregate_id == aggregate_id).order_by(t.c.occurred_at.asc()))

    async def get_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        from sqlalchemy import select  # type: ignore[import-untyped]

        t = outbox_table()
        stmt = (
            select(t)
            .where(t.c.occurred_at >= _utc(start), t.c.occurred_at <= _utc(end))
            .order_by(t.c.occurred_at.asc())
        )
        return await self._fetch(stmt)

    async def get_by_type(self, event_type: str) -> list[StoredEvent]:
        from sqlalchemy import select  # type: ignore[import-untyped]

        t = outbox_table()
        return await self._fetch(select(t).where(t.c.event_type == event_type).order_by(t.c.occurred_at.asc()))

    async def get_failed(self, limit: int = 100) -> list[StoredEvent]:
        from sqlalchemy import select  # type: ignore[import-untyped]

        t = outbox_table()
        stmt = select(t).where(t.c.permanently_failed.is_(True)).order_by(t.c.created_at.asc()).limit(limit)
        return await self._fetch(stmt)

    async def _fetch(self, stmt: Any) -> list[StoredEvent]:
        async with self._transaction() as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
        return [_row_to_event(row) for row in rows]


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _event_to_row(event: StoredEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "payload": event.payload,
        "aggregate_id": event.aggregate_id,
        "aggregate_type": event.aggregate_type,
        "occurred_at": _utc(event.occurred_at),
        "created_at": _utc(event.created_at),
        "is_published": event.is_published,
        "published_at": _utc(event.published_at) if event.published_at else None,
        "retry_count": event.retry_count,
        "is_failed": event.is_failed,
        "error_message": event.error_message,
        "permanently_failed": event.permanently_failed,
        "headers": dict(event.headers),
    }


def _row_to_event(row: Any) -> StoredEvent:
    return StoredEvent(
        id=row["id"],
        event_type=row["event_type"],
        payload=row["payload"],
        aggregate_id=row["aggregate_id"],
        aggregate_type=row["aggregate_type"],
        occurred_at=_aware(row["occurred_at"]),  # type: ignore[arg-type]
        created_at=_aware(row["created_at"]),  # type: ignore[arg-type]
        is_published=bool(row["is_published"]),
        published_at=_aware(row["published_at"]),
        retry_count=int(row["retry_count"]),
        is_failed=bool(row["is_failed"]),
        error_message=row["error_message"],
        permanently_failed=bool(row["permanently_failed"]),
        headers=dict(row["headers"] or {}),
    )


__all__ = ["TABLE_NAME", "SqlAlchemyEventStore", "outbox_table"]
