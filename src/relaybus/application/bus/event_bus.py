"""Application bus – EventBus façade selecting the delivery mode.

=============  ===================  =====================  ==========================
Mode           In-process publish   Outbox persistence     Background processor sends
=============  ===================  =====================  ==========================
IN_MEMORY      yes                  no                     (none)
PERSISTENT     no                   yes                    transport + in-process
HYBRID         yes (first)          yes                    transport only
=============  ===================  =====================  ==========================

In ``HYBRID`` mode the same event can reach a transport consumer after the
in-process handlers already saw it, and again after a crash; downstream
consumers must be idempotent. Handlers run before the record is persisted,
so a process crash during them loses the in-process delivery. A handler
that raises instead leaves its record flagged, and a processor built with
``create_processor(redeliver_failed_handlers=True)`` runs the handlers for
flagged records again.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from enum import Enum
from typing import Any

from relaybus.application.outbox import LeaderLock, OutboxProcessor, OutboxProcessorOptions
from relaybus.application.publisher import EventPublisher, PublishBatchResult
from relaybus.kernel.errors import ConfigurationError
from relaybus.kernel.events import DomainEvent, EventTypeRegistry
from relaybus.kernel.messaging import EventStore, MessageTransport, StoredEvent
from relaybus.kernel.time import Clock, SystemClock
from relaybus.observability.logging import get_logger


class EventBusMode(str, Enum):
    IN_MEMORY = "in_memory"
    PERSISTENT = "persistent"
    HYBRID = "hybrid"

    @property
    def publishes_immediately(self) -> bool:
        return self is not EventBusMode.PERSISTENT

    @property
    def persists(self) -> bool:
        return self is not EventBusMode.IN_MEMORY


class EventBus:
    """Publish domain events according to the configured :class:`EventBusMode`.

    Validation happens here, at construction: a durable mode without a store,
    or an immediate mode without a publisher, raises
    :class:`~relaybus.kernel.errors.ConfigurationError`.
    """

    def __init__(
        self,
        publisher: EventPublisher | None = None,
        *,
        mode: EventBusMode = EventBusMode.HYBRID,
        store: EventStore | None = None,
        registry: EventTypeRegistry | None = None,
        clock: Clock | None = None,
        logger: Any = None,
    ) -> None:
        mode = EventBusMode(mode)
        if mode.persists and store is None:
            raise ConfigurationError(f"EventBus mode '{mode.value}' requires an EventStore")
        if mode.publishes_immediately and publisher is None:
            raise ConfigurationError(f"EventBus mode '{mode.value}' requires an EventPublisher")

        self._publisher = publisher
        self._mode = mode
        self._store = store
        self._registry = registry or EventTypeRegistry()
        self._clock = clock or SystemClock()
        self._log = logger or get_logger(__name__)

    @property
    def mode(self) -> EventBusMode:
        return self._mode

    @property
    def registry(self) -> EventTypeRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(self, event: DomainEvent) -> None:
        """Publish one event.

        Storage failures always propagate. In ``HYBRID`` mode the event is
        persisted even when an in-process handler raises, and the handler's
        exception is re-raised afterwards.
        """
        self._log.debug("bus.publishing", event_type=event.event_type, event_id=event.event_id, mode=self._mode.value)

        immediate_error: Exception | None = None
        if self._mode.publishes_immediately:
            try:
                await self._publisher.publish(event)  # type: ignore[union-attr]
            except Exception as exc:
                if not self._mode.persists:
                    raise
                immediate_error = exc

        if self._mode.persists:
            stored = self._to_stored(event, handler_failed=immediate_error is not None)
            await self._store.save_event(stored)  # type: ignore[union-attr]

        if immediate_error is not None:
            self._log.warning(
                "bus.immediate_delivery_failed",
                event_type=event.event_type,
                event_id=event.event_id,
                error=str(immediate_error),
            )
            raise immediate_error

    async def publish_batch(self, events: Sequence[DomainEvent]) -> None:
        """Publish *events* in order with the same per-event mode semantics.

        Immediate-path failures do not stop the rest of the batch from being
        delivered or persisted; once the batch is persisted they are raised as
        one :class:`DeliveryError` carrying the failed event ids.
        """
        if not events:
            self._log.debug("bus.empty_batch")
            return

        result = PublishBatchResult()
        if self._mode.publishes_immediately:
            result = await self._publisher.publish_batch(events)  # type: ignore[union-attr]

        if self._mode.persists:
            failed_ids = set(result.failed_ids)
            records = [self._to_stored(e, handler_failed=e.event_id in failed_ids) for e in events]
            await self._store.save_events(records)  # type: ignore[union-attr]

        self._log.info(
            "bus.batch_published",
            count=len(events),
            failed=len(result.failed),
            mode=self._mode.value,
        )
        if not result.ok:
            result.raise_for_failures()

    def _to_stored(self, event: DomainEvent, *, handler_failed: bool = False) -> StoredEvent:
        return StoredEvent.from_domain_event(
            event,
            self._registry.encode(event),
            clock=self._clock,
            handler_failed=handler_failed,
        )

    # ------------------------------------------------------------------
    # Processor wiring
    # ------------------------------------------------------------------

    def create_processor(
        self,
        *,
        transport: MessageTransport | None = None,
        options: OutboxProcessorOptions | None = None,
        lock: LeaderLock | None = None,
        redeliver_failed_handlers: bool = False,
    ) -> OutboxProcessor:
        """Build the outbox processor matching this bus's mode.

        ``PERSISTENT`` hands records to the transport (when given) and to the
        in-process publisher (when configured). ``HYBRID`` forwards to the
        transport, since in-process handlers already ran at publish time;
        with *redeliver_failed_handlers* it also reruns the handlers of
        records whose handlers raised during :meth:`publish`.
        """
        if not self._mode.persists:
            raise ConfigurationError("An in-memory EventBus has no outbox to process")

        hybrid_retry = self._mode is EventBusMode.HYBRID and redeliver_failed_handlers
        publisher = self._publisher if self._mode is EventBusMode.PERSISTENT or hybrid_retry else None
        if self._mode is EventBusMode.HYBRID and transport is None:
            raise ConfigurationError("A hybrid EventBus processor requires a MessageTransport")

        return OutboxProcessor(
            self._store,  # type: ignore[arg-type]
            registry=self._registry,
            transport=transport,
            publisher=publisher,
            options=options,
            lock=lock,
            logger=self._log,
            handler_retry_only=hybrid_retry,
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def _require_store(self) -> EventStore:
        if self._store is None:
            raise ConfigurationError("Diagnostic queries require an EventStore")
        return self._store

    async def get_events_by_aggregate_id(self, aggregate_id: str) -> list[StoredEvent]:
        return await self._require_store().get_by_aggregate_id(aggregate_id)

    async def get_events_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        return await self._require_store().get_by_time_range(start, end)

    async def get_events_by_type(self, event_type: str) -> list[StoredEvent]:
        return await self._require_store().get_by_type(event_type)

    async def get_failed_events(self, limit: int = 100) -> list[StoredEvent]:
        return await self._require_store().get_failed(limit)


__all__ = ["EventBus", "EventBusMode"]
