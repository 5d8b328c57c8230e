"""Config settings – RelaybusSettings."""
from __future__ import annotations

import dataclasses

from relaybus.application.bus import EventBusMode
from relaybus.application.outbox import OutboxProcessorOptions
from relaybus.config.settings.base import Settings
from relaybus.config.validation import InvalidSettingValueError

STORE_BACKENDS = ("memory", "sqlalchemy", "mongodb", "redis")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclasses.dataclass
class RelaybusSettings(Settings):
    """Deployment settings for the event bus and its outbox processor.

    Loaded from ``RELAYBUS_*`` environment variables by
    :class:`~relaybus.config.settings.loaders.EnvSettingsLoader`.
    """

    _prefix = "RELAYBUS"
    _secret_fields = frozenset({"store_url"})

    mode: str = EventBusMode.HYBRID.value
    store_backend: str = "memory"
    store_url: str = ""
    processing_interval_seconds: float = 10.0
    batch_size: int = 100
    max_retry_attempts: int = 5
    delivery_timeout_seconds: float | None = 30.0
    redis_event_ttl_seconds: int = 0
    log_level: str = "INFO"

    def _validate(self) -> None:
        modes = [m.value for m in EventBusMode]
        if self.mode not in modes:
            raise InvalidSettingValueError("mode", self.mode, f"expected one of {modes}")
        if self.store_backend not in STORE_BACKENDS:
            raise InvalidSettingValueError(
                "store_backend", self.store_backend, f"expected one of {list(STORE_BACKENDS)}"
            )
        if self.store_backend in ("sqlalchemy", "mongodb", "redis") and not self.store_url:
            raise InvalidSettingValueError(
                "store_url", self.store_url, f"required for store_backend={self.store_backend!r}"
            )
        if self.processing_interval_seconds < 0:
            raise InvalidSettingValueError(
                "processing_interval_seconds", self.processing_interval_seconds, "must be >= 0"
            )
        if self.batch_size < 1:
            raise InvalidSettingValueError("batch_size", self.batch_size, "must be >= 1")
        if self.max_retry_attempts < 1:
            raise InvalidSettingValueError("max_retry_attempts", self.max_retry_attempts, "must be >= 1")
        if self.delivery_timeout_seconds is not None and self.delivery_timeout_seconds <= 0:
            raise InvalidSettingValueError(
                "delivery_timeout_seconds", self.delivery_timeout_seconds, "must be > 0"
            )
        if self.redis_event_ttl_seconds < 0:
            raise InvalidSettingValueError(
                "redis_event_ttl_seconds", self.redis_event_ttl_seconds, "must be >= 0"
            )
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise InvalidSettingValueError("log_level", self.log_level, f"expected one of {list(LOG_LEVELS)}")

    def event_bus_mode(self) -> EventBusMode:
        return EventBusMode(self.mode)

    def processor_options(self) -> OutboxProcessorOptions:
        return OutboxProcessorOptions(
            processing_interval_seconds=self.processing_interval_seconds,
            batch_size=self.batch_size,
            max_retry_attempts=self.max_retry_attempts,
            delivery_timeout_seconds=self.delivery_timeout_seconds,
        )


__all__ = ["LOG_LEVELS", "STORE_BACKENDS", "RelaybusSettings"]
