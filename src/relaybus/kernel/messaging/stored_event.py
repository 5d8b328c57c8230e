"""Kernel messaging – StoredEvent, the durable outbox record."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

if TYPE_CHECKING:
    from relaybus.kernel.events import DomainEvent
    from relaybus.kernel.time import Clock

# Set on records whose in-process handlers failed at publish time.
HANDLER_RETRY_HEADER = "relaybus-handler-retry"


@dataclasses.dataclass
class StoredEvent:
    """One event awaiting, or having completed, delivery.

    ``payload`` is opaque to every store: it is the string produced by the
    event type registry and is only decoded at delivery time.

    ``is_failed`` reflects the *last attempt* only. A record becomes terminal
    through ``permanently_failed``, which is set once ``retry_count`` reaches
    the processor's cap; terminal records are excluded from polling.
    """

    event_type: str
    payload: str
    id: str = dataclasses.field(default_factory=lambda: str(uuid4()))
    aggregate_id: str | None = None
    aggregate_type: str | None = None
    occurred_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))
    created_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))
    is_published: bool = False
    published_at: datetime | None = None
    retry_count: int = 0
    is_failed: bool = False
    error_message: str | None = None
    permanently_failed: bool = False
    headers: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def needs_handler_retry(self) -> bool:
        return self.headers.get(HANDLER_RETRY_HEADER) == "true"

    @property
    def is_pending(self) -> bool:
        """True while the processor may still pick the record up."""
        return not self.is_published and not self.permanently_failed

    @classmethod
    def from_domain_event(
        cls,
        event: DomainEvent,
        payload: str,
        *,
        clock: Clock | None = None,
        handler_failed: bool = False,
    ) -> StoredEvent:
        """Build the outbox record for *event*; the record id is the event id."""
        created_at = clock.now() if clock is not None else datetime.now(UTC)
        headers: dict[str, str] = {}
        if event.correlation_id:
            headers["correlation-id"] = event.correlation_id
        if handler_failed:
            headers[HANDLER_RETRY_HEADER] = "true"
        return cls(
            id=event.event_id,
            event_type=event.event_type,
            payload=payload,
            aggregate_id=event.aggregate_id,
            aggregate_type=event.aggregate_type,
            occurred_at=event.occurred_at,
            created_at=created_at,
            headers=headers,
        )

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON-friendly representation (datetimes as ISO strings)."""
        data = dataclasses.asdict(self)
        for key in ("occurred_at", "created_at", "published_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredEvent:
        """Inverse of :meth:`to_dict`; tolerant of missing optional keys."""

        def _dt(value: Any) -> datetime | None:
            if value is None or isinstance(value, datetime):
                return value
            return datetime.fromisoformat(value)

        return cls(
            id=data["id"],
            event_type=data["event_type"],
            payload=data.get("payload", ""),
            aggregate_id=data.get("aggregate_id"),
            aggregate_type=data.get("aggregate_type"),
            occurred_at=_dt(data["occurred_at"]),  # type: ignore[arg-type]
            created_at=_dt(data["created_at"]),  # type: ignore[arg-type]
            is_published=bool(data.get("is_published", False)),
            published_at=_dt(data.get("published_at")),
            retry_count=int(data.get("retry_count", 0)),
            is_failed=bool(data.get("is_failed", False)),
            error_message=data.get("error_message"),
            permanently_failed=bool(data.get("permanently_failed", False)),
            headers=dict(data.get("headers") or {}),
        )


__all__ = ["HANDLER_RETRY_HEADER", "StoredEvent"]
