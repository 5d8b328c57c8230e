"""Kernel error hierarchy — public re-export surface.

Hierarchy::

    BaseError
    ├── ApplicationError          (application.py)
    │   ├── ConfigurationError
    │   └── TerminalFailureError
    └── InfrastructureError       (infrastructure.py)
        ├── StorageError
        ├── DeliveryError
        │   └── DeliveryTimeoutError
        └── SerializationError
            └── UnknownEventTypeError
"""

from relaybus.kernel.errors.application import (
    ApplicationError,
    ConfigurationError,
    TerminalFailureError,
)
from relaybus.kernel.errors.base import BaseError
from relaybus.kernel.errors.infrastructure import (
    DeliveryError,
    DeliveryTimeoutError,
    InfrastructureError,
    SerializationError,
    StorageError,
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
