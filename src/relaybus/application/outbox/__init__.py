"""Application outbox – background delivery of persisted events."""
from relaybus.application.outbox.options import OutboxProcessorOptions
from relaybus.application.outbox.processor import (
    LeaderLock,
    OutboxProcessor,
    ProcessorState,
    ProcessorStats,
)

__all__ = [
    "LeaderLock",
    "OutboxProcessor",
    "OutboxProcessorOptions",
    "ProcessorState",
    "ProcessorStats",
]
