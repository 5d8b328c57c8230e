"""Background outbox processor for reliable event delivery.

The processor runs as a single asyncio task that:

1. Sleeps for the processing interval (returning at once when stopped)
2. Fetches a batch of pending records from the :class:`EventStore`
3. Delivers each record, oldest first, to the transport and/or the
   in-process publisher
4. Marks records published, failed, or permanently failed

A failure in one record or one cycle is logged and never ends the loop;
only :meth:`OutboxProcessor.stop` does.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from relaybus.application.outbox.options import OutboxProcessorOptions
from relaybus.application.publisher import EventPublisher
from relaybus.kernel.errors import ConfigurationError, TerminalFailureError
from relaybus.kernel.events import EventTypeRegistry
from relaybus.kernel.messaging import EventStore, Message, MessageTransport, StoredEvent
from relaybus.observability.logging import get_logger
from relaybus.resilience import TenacityRetryPolicy, TimeoutPolicy

MAX_ERROR_MESSAGE_LENGTH = 1000


class ProcessorState(str, Enum):
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


class LeaderLock(Protocol):
    """Lease guarding a polling cycle across processor instances.

    A lock may also define ``async extend() -> bool``; the processor then
    renews the lease after each record and abandons the batch once renewal
    reports the lease lost.
    """

    async def acquire(self) -> bool: ...

    async def release(self) -> None: ...


@dataclasses.dataclass
class ProcessorStats:
    """Counters accumulated since construction."""

    cycles: int = 0
    published: int = 0
    failed_attempts: int = 0
    permanently_failed: int = 0
    skipped_cycles: int = 0
    cycle_errors: int = 0
    withheld: int = 0
    leases_lost: int = 0


class OutboxProcessor:
    """Drains pending outbox records in batches.

    Attributes:
        store: Source of pending records.
        registry: Resolves topics and decodes payloads by ``event_type``.
        transport: Distributed delivery target (optional).
        publisher: In-process delivery target (optional).
        options: Interval, batch size, retry cap and timeouts.
        lock: Optional leader lease; a cycle is skipped when it is held elsewhere.
        handler_retry_only: Hand only records flagged by a failed publish-time
            handler to *publisher*.
    """

    def __init__(
        self,
        store: EventStore,
        *,
        registry: EventTypeRegistry,
        transport: MessageTransport | None = None,
        publisher: EventPublisher | None = None,
        options: OutboxProcessorOptions | None = None,
        lock: LeaderLock | None = None,
        logger: Any = None,
        handler_retry_only: bool = False,
    ) -> None:
        if transport is None and publisher is None:
            raise ConfigurationError("OutboxProcessor needs a transport, a publisher, or both")

        self._store = store
        self._registry = registry
        self._transport = transport
        self._publisher = publisher
        self._options = options or OutboxProcessorOptions()
        self._lock = lock
        self._log = logger or get_logger(__name__)
        self._handler_retry_only = handler_retry_only

        self._timeout = TimeoutPolicy(self._options.delivery_timeout_seconds)
        self._bookkeeping = TenacityRetryPolicy(max_attempts=self._options.bookkeeping_retry_attempts)

        self._state = ProcessorState.STOPPED
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.stats = ProcessorStats()

    @property
    def options(self) -> OutboxProcessorOptions:
        return self._options

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ProcessorState.RUNNING

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the polling loop on its own task."""
        if self.is_running:
            self._log.warning("outbox.already_running")
            return

        self._stop_event = asyncio.Event()
        self._state = ProcessorState.RUNNING
        self._task = asyncio.create_task(self._run_loop(), name="relaybus-outbox-processor")
        self._log.info(
            "outbox.started",
            processing_interval_seconds=self._options.processing_interval_seconds,
            batch_size=self._options.batch_size,
            max_retry_attempts=self._options.max_retry_attempts,
        )

    async def stop(self) -> None:
        """Stop the loop, letting the in-flight cycle finish.

        The inter-cycle sleep is aborted at once. A cycle still running after
        ``shutdown_timeout_seconds`` is cancelled.
        """
        if not self.is_running:
            return

        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=self._options.shutdown_timeout_seconds)
            except TimeoutError:
                self._log.warning("outbox.shutdown_timed_out")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._state = ProcessorState.STOPPED
        self._log.info("outbox.stopped")

    async def __aenter__(self) -> OutboxProcessor:
        await self.start()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.stop()

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            if await self._wait_for_stop(self._options.processing_interval_seconds):
                break
            try:
                processed = await self.process_once()
            except Exception:
                self.stats.cycle_errors += 1
                self._log.error("outbox.cycle_failed", exc_info=True)
                continue
            if processed:
                self._log.info("outbox.batch_processed", published=processed)

    async def _wait_for_stop(self, seconds: float) -> bool:
        """Sleep up to *seconds*; True when stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def process_once(self) -> int:
        """Fetch one batch and deliver it.

        Returns the number of records marked published. Store errors raised
        while fetching propagate; per-record errors never do.
        """
        if self._lock is not None and not await self._lock.acquire():
            self.stats.skipped_cycles += 1
            self._log.debug("outbox.cycle_skipped", reason="lock_held_elsewhere")
            return 0

        try:
            self.stats.cycles += 1
            events = await self._store.get_unpublished(self._options.batch_size)
            if not events:
                return 0

            self._log.debug("outbox.batch_fetched", size=len(events))
            published = 0
            for event in events:
                if self._stop_event.is_set():
                    break
                if await self._process_event(event):
                    published += 1
                if not await self._renew_lease():
                    break
            return published
        finally:
            if self._lock is not None:
                await self._lock.release()

    async def _process_event(self, event: StoredEvent) -> bool:
        max_attempts = self._options.max_retry_attempts
        if event.retry_count >= max_attempts:
            reason = TerminalFailureError(event.id, max_attempts).message
            await self._bookkeep(
                lambda: self._store.mark_failed(event.id, reason, permanent=True),
                event,
            )
            self.stats.permanently_failed += 1
            self._log.error(
                "outbox.event_permanently_failed",
                event_id=event.id,
                event_type=event.event_type,
                retry_count=event.retry_count,
            )
            return False

        try:
            await self._timeout.execute(lambda: self._deliver(event))
        except Exception as exc:  # noqa: BLE001
            error_message = _describe(exc)
            self.stats.failed_attempts += 1
            self._log.warning(
                "outbox.delivery_failed",
                event_id=event.id,
                event_type=event.event_type,
                retry_count=event.retry_count + 1,
                error=error_message,
            )
            await self._bookkeep(lambda: self._store.mark_failed(event.id, error_message), event)
            return False

        if not await self._bookkeep(lambda: self._store.mark_published(event.id), event):
            return False
        self.stats.published += 1
        self._log.debug("outbox.event_published", event_id=event.id, event_type=event.event_type)
        return True

    async def _renew_lease(self) -> bool:
        extend = getattr(self._lock, "extend", None)
        if extend is None or await extend():
            return True
        self.stats.leases_lost += 1
        self._log.warning("outbox.lease_lost")
        return False

    async def _deliver(self, event: StoredEvent) -> None:
        domain_event = None
        in_process = self._publisher is not None and (
            not self._handler_retry_only or event.needs_handler_retry
        )
        if in_process:
            # Decode first so an unknown type fails before any side effect.
            domain_event = self._registry.decode(event.event_type, event.payload)

        if self._transport is not None:
            await self._send(event)

        if in_process:
            await self._publisher.publish(domain_event)  # type: ignore[union-attr]

    async def _send(self, event: StoredEvent) -> None:
        integration = self._registry.integration_for(event.event_type, event.payload)
        if integration is None:
            self.stats.withheld += 1
            self._log.debug("outbox.transport_withheld", event_id=event.id, event_type=event.event_type)
            return
        event_type, payload = integration
        message = Message.from_stored_event(
            event,
            self._registry.topic_for(event.event_type),
            payload=payload,
            event_type=event_type,
        )
        await self._transport.publish(message)  # type: ignore[union-attr]

    async def _bookkeep(self, write: Callable[[], Awaitable[None]], event: StoredEvent) -> bool:
        try:
            await self._bookkeeping.execute_async(write)
        except Exception:
            self._log.error("outbox.bookkeeping_failed", event_id=event.id, exc_info=True)
            return False
        return True


def _describe(exc: BaseException) -> str:
    text = str(exc) or type(exc).__name__
    return text[:MAX_ERROR_MESSAGE_LENGTH]


__all__ = [
    "LeaderLock",
    "OutboxProcessor",
    "ProcessorState",
    "ProcessorStats",
]
