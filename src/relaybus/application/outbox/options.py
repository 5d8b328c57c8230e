"""Application outbox – OutboxProcessorOptions."""
from __future__ import annotations

import dataclasses

from relaybus.kernel.errors import ConfigurationError


@dataclasses.dataclass(frozen=True)
class OutboxProcessorOptions:
    """Tuning knobs for :class:`~relaybus.application.outbox.OutboxProcessor`.

    Attributes:
        processing_interval_seconds: Sleep between polling cycles.
        batch_size: Maximum records fetched per cycle.
        max_retry_attempts: Failed attempts after which a record is terminal.
        delivery_timeout_seconds: Bound on one delivery attempt; ``None`` disables it.
        shutdown_timeout_seconds: How long ``stop()`` waits for the in-flight cycle.
        bookkeeping_retry_attempts: Attempts for each mark_published / mark_failed write.
    """

    processing_interval_seconds: float = 10.0
    batch_size: int = 100
    max_retry_attempts: int = 5
    delivery_timeout_seconds: float | None = 30.0
    shutdown_timeout_seconds: float = 30.0
    bookkeeping_retry_attempts: int = 3

    def __post_init__(self) -> None:
        if self.processing_interval_seconds < 0:
            raise ConfigurationError("processing_interval_seconds must be >= 0")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1")
        if self.max_retry_attempts < 1:
            raise ConfigurationError("max_retry_attempts must be >= 1")
        if self.delivery_timeout_seconds is not None and self.delivery_timeout_seconds <= 0:
            raise ConfigurationError("delivery_timeout_seconds must be > 0")
        if self.shutdown_timeout_seconds <= 0:
            raise ConfigurationError("shutdown_timeout_seconds must be > 0")
        if self.bookkeeping_retry_attempts < 1:
            raise ConfigurationError("bookkeeping_retry_attempts must be >= 1")


__all__ = ["OutboxProcessorOptions"]
