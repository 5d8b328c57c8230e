"""Application publisher – EventHandler, EventPublisher, InProcessEventPublisher."""

from __future__ import annotations

import abc
import dataclasses
import inspect
from collections.abc import Sequence
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from relaybus.kernel.errors import DeliveryError
from relaybus.kernel.events import DomainEvent
from relaybus.observability.logging import get_logger

E = TypeVar("E", bound=DomainEvent)


class EventHandler(abc.ABC, Generic[E]):
    """Handle a single domain event type."""

    @abc.abstractmethod
    async def handle(self, event: E) -> None: ...


HandlerFunc = Callable[[Any], Awaitable[None]]
Handler = Union[EventHandler[Any], HandlerFunc]


@dataclasses.dataclass
class PublishBatchResult:
    """Outcome of :meth:`EventPublisher.publish_batch`, keyed by event id."""

    succeeded: list[str] = dataclasses.field(default_factory=list)
    failed: list[tuple[str, BaseException]] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def failed_ids(self) -> list[str]:
        return [event_id for event_id, _ in self.failed]

    def raise_for_failures(self) -> None:
        if not self.failed:
            return
        first = self.failed[0][1]
        raise DeliveryError(
            f"{len(self.failed)} event(s) failed in-process delivery",
            event_ids=self.failed_ids,
            cause=first,
        )


class EventPublisher(abc.ABC):
    """Port: deliver events to in-process handlers, synchronously with the caller."""

    @abc.abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """Deliver *event* to every handler for its type; propagate the first error."""

    async def publish_batch(self, events: Sequence[DomainEvent]) -> PublishBatchResult:
        """Deliver *events* in order, continuing past failures."""
        result = PublishBatchResult()
        for event in events:
            try:
                await self.publish(event)
            except Exception as exc:  # noqa: BLE001
                result.failed.append((event.event_id, exc))
            else:
                result.succeeded.append(event.event_id)
        return result


class InProcessEventPublisher(EventPublisher):
    """Registry-style publisher keyed by ``event_type`` strings.

    Handlers run sequentially in registration order. The first handler that
    raises stops delivery of that event and the exception propagates
    unchanged.

    Example::

        publisher = InProcessEventPublisher()
        publisher.subscribe("order.placed", send_confirmation_email)
        await publisher.publish(OrderPlaced(order_id="x"))
    """

    def __init__(self, *, logger: Any = None) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._log = logger or get_logger(__name__)

    def subscribe(self, event_type: str | type[DomainEvent], handler: Handler) -> None:
        key = event_type if isinstance(event_type, str) else event_type.event_type
        self._handlers.setdefault(key, []).append(handler)

    def unsubscribe(self, event_type: str | type[DomainEvent], handler: Handler) -> None:
        key = event_type if isinstance(event_type, str) else event_type.event_type
        handlers = self._handlers.get(key, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_type: str) -> list[Handler]:
        return list(self._handlers.get(event_type, []))

    async def publish(self, event: DomainEvent) -> None:
        handlers = self._handlers.get(event.event_type, [])
        if not handlers:
            self._log.warning("publisher.no_handlers", event_type=event.event_type, event_id=event.event_id)
            return

        for handler in list(handlers):
            try:
                await _invoke(handler, event)
            except Exception:
                self._log.error(
                    "publisher.handler_failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    handler=_handler_name(handler),
                    exc_info=True,
                )
                raise
        self._log.debug("publisher.published", event_type=event.event_type, handlers=len(handlers))


async def _invoke(handler: Handler, event: DomainEvent) -> None:
    if isinstance(handler, EventHandler):
        await handler.handle(event)
        return
    result = handler(event)
    if inspect.isawaitable(result):
        await result


def _handler_name(handler: Handler) -> str:
    if isinstance(handler, EventHandler):
        return type(handler).__name__
    return getattr(handler, "__qualname__", repr(handler))


__all__ = [
    "EventHandler",
    "EventPublisher",
    "Handler",
    "InProcessEventPublisher",
    "PublishBatchResult",
]
