"""Application publisher – in-process event dispatch."""
from relaybus.application.publisher.publisher import (
    EventHandler,
    EventPublisher,
    Handler,
    InProcessEventPublisher,
    PublishBatchResult,
)

__all__ = [
    "EventHandler",
    "EventPublisher",
    "Handler",
    "InProcessEventPublisher",
    "PublishBatchResult",
]
