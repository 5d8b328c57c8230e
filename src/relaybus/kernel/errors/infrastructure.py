"""Infrastructure errors — storage, transport and serialisation failures."""

from __future__ import annotations

from typing import Any

from relaybus.kernel.errors.base import BaseError


class InfrastructureError(BaseError):
    """Infrastructure / I/O failure that is not a business rule violation."""

    default_code = "infrastructure_error"


class StorageError(InfrastructureError):
    """The event store is unreachable or rejected a write."""

    default_code = "storage_error"

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.backend = backend


class DeliveryError(InfrastructureError):
    """A transport call or in-process handler failed to accept an event."""

    default_code = "delivery_error"

    def __init__(
        self,
        message: str,
        *,
        event_ids: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.event_ids: list[str] = event_ids or []


class DeliveryTimeoutError(DeliveryError):
    """A delivery attempt exceeded its deadline."""

    default_code = "delivery_timeout"


class SerializationError(InfrastructureError):
    """Failed to serialize or deserialize an event payload."""

    default_code = "serialization_error"

    def __init__(
        self,
        message: str,
        *,
        event_type: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.event_type = event_type


class UnknownEventTypeError(SerializationError):
    """No codec is registered for the stored ``event_type``."""

    default_code = "unknown_event_type"

    def __init__(self, event_type: str, **kwargs: Any) -> None:
        super().__init__(f"Event type '{event_type}' is not registered", event_type=event_type, **kwargs)


__all__ = [
    "DeliveryError",
    "DeliveryTimeoutError",
    "InfrastructureError",
    "SerializationError",
    "StorageError",
    "UnknownEventTypeError",
]
