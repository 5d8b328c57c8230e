"""Event type registry for serialisation, decoding and topic routing.

The registry maps ``event_type`` strings to codecs, populated at startup.
Stored payloads are decoded through the registry rather than by loading a
class from its name, so only explicitly registered types are ever built.

Usage::

    registry = EventTypeRegistry()

    @registry.register
    @dataclasses.dataclass(frozen=True, kw_only=True)
    class OrderPlaced(DomainEvent):
        event_type: ClassVar[str] = "order.placed"
        order_id: str

    # Or with routing options
    registry.register(OrderShipped, topic="orders.shipping")

    # Or for payloads that are not DomainEvent subclasses
    registry.register_codec("legacy.ping", decoder=json.loads, encoder=json.dumps)

    # Publish a public integration event instead of the domain event, or
    # keep a type in-process only by mapping it to None
    registry.register(OrderPlaced, integration=lambda e: OrderAccepted(order_id=e.order_id))
    registry.register(CartTouched, integration=lambda e: None)
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Callable, TypeVar, overload

from relaybus.kernel.errors import SerializationError, UnknownEventTypeError
from relaybus.kernel.events.domain_event import DomainEvent
from relaybus.observability.logging import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=DomainEvent)

Encoder = Callable[[Any], str]
Decoder = Callable[[str], Any]
IntegrationMapper = Callable[[Any], Any]


def _default_encoder(event: Any) -> str:
    if isinstance(event, DomainEvent):
        return json.dumps(event.to_dict(), default=str)
    return json.dumps(event, default=str)


@dataclasses.dataclass(frozen=True)
class EventRegistration:
    """Codec and routing for a single ``event_type``."""

    event_type: str
    decoder: Decoder
    encoder: Encoder = _default_encoder
    topic: str | None = None
    event_class: type[Any] | None = None
    integration: IntegrationMapper | None = None


class EventTypeRegistry:
    """Registry of event types.

    Registration is expected during startup; lookups are read-only afterwards.
    """

    def __init__(self, *, default_topic: str | None = None) -> None:
        self._registrations: dict[str, EventRegistration] = {}
        self._default_topic = default_topic

    @overload
    def register(self, event_class: type[E]) -> type[E]: ...

    @overload
    def register(
        self,
        event_class: None = None,
        *,
        topic: str | None = None,
        integration: IntegrationMapper | None = None,
    ) -> Callable[[type[E]], type[E]]: ...

    def register(
        self,
        event_class: type[E] | None = None,
        *,
        topic: str | None = None,
        integration: IntegrationMapper | None = None,
    ) -> type[E] | Callable[[type[E]], type[E]]:
        """Register a :class:`DomainEvent` subclass.

        Works as a plain call, a bare decorator, or ``@register(topic=...)``.
        Registering the same class twice is a no-op; registering a different
        class under an existing ``event_type`` raises ``ValueError``.

        *integration* maps the decoded event to what the outbox sends to the
        message transport; returning ``None`` keeps that event off the
        transport.
        """

        def _register(cls: type[E]) -> type[E]:
            event_type = cls.event_type
            existing = self._registrations.get(event_type)
            if existing is not None:
                if existing.event_class is cls:
                    return cls
                raise ValueError(
                    f"Event type '{event_type}' already registered"
                    f" with {getattr(existing.event_class, '__name__', existing.decoder)!r}"
                )

            def _decode(payload: str) -> DomainEvent:
                return cls.from_dict(json.loads(payload))

            self._registrations[event_type] = EventRegistration(
                event_type=event_type,
                decoder=_decode,
                topic=topic,
                event_class=cls,
                integration=integration,
            )
            logger.debug("registry.event_registered", event_type=event_type, cls=cls.__name__)
            return cls

        if event_class is None:
            return _register
        return _register(event_class)

    def register_codec(
        self,
        event_type: str,
        *,
        decoder: Decoder,
        encoder: Encoder | None = None,
        topic: str | None = None,
        integration: IntegrationMapper | None = None,
    ) -> None:
        """Register an explicit decoder (and optional encoder) for *event_type*."""
        if event_type in self._registrations:
            raise ValueError(f"Event type '{event_type}' already registered")
        self._registrations[event_type] = EventRegistration(
            event_type=event_type,
            decoder=decoder,
            encoder=encoder or _default_encoder,
            topic=topic,
            integration=integration,
        )

    def is_registered(self, event_type: str) -> bool:
        return event_type in self._registrations

    def get(self, event_type: str) -> EventRegistration:
        try:
            return self._registrations[event_type]
        except KeyError:
            raise UnknownEventTypeError(event_type) from None

    def event_types(self) -> list[str]:
        return sorted(self._registrations)

    def encode(self, event: DomainEvent) -> str:
        """Serialise *event* to the string payload persisted in the outbox.

        Unregistered events fall back to the default JSON encoding so that
        persistence never depends on registration; decoding does.
        """
        registration = self._registrations.get(event.event_type)
        encoder = registration.encoder if registration else _default_encoder
        try:
            return encoder(event)
        except (TypeError, ValueError) as exc:
            raise SerializationError(
                f"Could not encode event '{event.event_type}'",
                event_type=event.event_type,
                cause=exc,
            ) from exc

    def decode(self, event_type: str, payload: str) -> Any:
        """Rebuild the event for *event_type* from its stored *payload*."""
        registration = self.get(event_type)
        try:
            return registration.decoder(payload)
        except (TypeError, ValueError, KeyError) as exc:
            raise SerializationError(
                f"Could not decode payload for '{event_type}'",
                event_type=event_type,
                cause=exc,
            ) from exc

    def integration_for(self, event_type: str, payload: str) -> tuple[str, str] | None:
        """Return ``(event_type, payload)`` to hand to the message transport.

        Types without an integration mapper pass through unchanged. ``None``
        means the mapper withheld the event from the transport.
        """
        registration = self._registrations.get(event_type)
        if registration is None or registration.integration is None:
            return event_type, payload

        mapped = registration.integration(self.decode(event_type, payload))
        if mapped is None:
            return None
        mapped_type = getattr(mapped, "event_type", None) or event_type
        try:
            return mapped_type, _default_encoder(mapped)
        except (TypeError, ValueError) as exc:
            raise SerializationError(
                f"Could not encode integration event for '{event_type}'",
                event_type=event_type,
                cause=exc,
            ) from exc

    def topic_for(self, event_type: str) -> str:
        """Resolve the transport topic for *event_type*.

        Precedence: per-type topic, registry default topic, the event type.
        """
        registration = self._registrations.get(event_type)
        if registration is not None and registration.topic:
            return registration.topic
        return self._default_topic or event_type


__all__ = ["EventRegistration", "EventTypeRegistry", "IntegrationMapper"]
