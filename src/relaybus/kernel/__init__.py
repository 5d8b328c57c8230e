"""Kernel – errors, time, events and messaging ports shared by every layer."""

from relaybus.kernel.errors import (
    ApplicationError,
    BaseError,
    ConfigurationError,
    DeliveryError,
    DeliveryTimeoutError,
    InfrastructureError,
    SerializationError,
    StorageError,
    TerminalFailureError,
    UnknownEventTypeError,
)

__all__ = [
    "ApplicationError",
    "BaseError",
    "ConfigurationError",
    "DeliveryError",
    "DeliveryTimeoutError",
    "InfrastructureError",
    "SerializationError",
    "StorageError",
    "TerminalFailureError",
    "UnknownEventTypeError",
]
