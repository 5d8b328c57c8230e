"""Kernel messaging – EventStore port."""

from __future__ import annotations

import abc
from collections.abc import Sequence
from datetime import datetime

from relaybus.kernel.messaging.stored_event import StoredEvent


class EventStore(abc.ABC):
    """Port — durable outbox storage.

    Every backend (relational, document, key-value, …) implements this one
    contract; the processor and the bus never depend on a concrete backend.

    Implementations wrap driver failures in
    :class:`~relaybus.kernel.errors.StorageError` and let it propagate.
    """

    @abc.abstractmethod
    async def save_event(self, event: StoredEvent) -> None:
        """Persist a single record."""

    @abc.abstractmethod
    async def save_events(self, events: Sequence[StoredEvent]) -> None:
        """Persist *events* atomically relative to each other."""

    @abc.abstractmethod
    async def get_unpublished(self, batch_size: int = 100) -> list[StoredEvent]:
        """Return up to *batch_size* pending records, oldest ``created_at`` first.

        Pending means ``is_published`` is false and the record is not
        permanently failed. Records whose last attempt failed are included.
        """

    @abc.abstractmethod
    async def mark_published(self, event_id: str) -> None:
        """Flag the record as delivered. Idempotent."""

    @abc.abstractmethod
    async def mark_failed(
        self,
        event_id: str,
        error_message: str,
        *,
        permanent: bool = False,
    ) -> None:
        """Record a failed attempt.

        A regular failure increments ``retry_count`` and sets ``is_failed``.
        ``permanent=True`` flags the record terminal without counting another
        attempt.
        """

    @abc.abstractmethod
    async def get_by_aggregate_id(self, aggregate_id: str) -> list[StoredEvent]:
        """All records for *aggregate_id*, ordered by ``occurred_at``."""

    @abc.abstractmethod
    async def get_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        """Records with ``start <= occurred_at <= end``, ordered by ``occurred_at``."""

    @abc.abstractmethod
    async def get_by_type(self, event_type: str) -> list[StoredEvent]:
        """All records of *event_type*, ordered by ``occurred_at``."""

    @abc.abstractmethod
    async def get_failed(self, limit: int = 100) -> list[StoredEvent]:
        """Permanently failed records, oldest first."""


__all__ = ["EventStore"]
