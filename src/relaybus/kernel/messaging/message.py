"""Kernel messaging – transport-agnostic message envelope."""
from __future__ import annotations

import dataclasses
from datetime import UTC, datetime
from uuid import uuid4

from relaybus.kernel.messaging.stored_event import HANDLER_RETRY_HEADER, StoredEvent

EVENT_TYPE_HEADER = "event-type"
AGGREGATE_ID_HEADER = "aggregate-id"
AGGREGATE_TYPE_HEADER = "aggregate-type"


@dataclasses.dataclass(frozen=True)
class Message:
    """String payload plus a type tag, with routing metadata."""

    topic: str
    payload: str
    event_type: str
    id: str = dataclasses.field(default_factory=lambda: str(uuid4()))
    headers: dict[str, str] = dataclasses.field(default_factory=dict)
    occurred_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))

    @property
    def correlation_id(self) -> str | None:
        return self.headers.get("correlation-id")

    @classmethod
    def from_stored_event(
        cls,
        event: StoredEvent,
        topic: str,
        *,
        payload: str | None = None,
        event_type: str | None = None,
    ) -> Message:
        """Build the envelope for an outbox record.

        The message id equals the record id so consumers can deduplicate
        redeliveries. *payload* and *event_type* replace the record's own
        when an integration event is sent in place of the domain event.
        """
        event_type = event_type or event.event_type
        headers = {k: v for k, v in event.headers.items() if k != HANDLER_RETRY_HEADER}
        headers[EVENT_TYPE_HEADER] = event_type
        if event.aggregate_id:
            headers[AGGREGATE_ID_HEADER] = event.aggregate_id
        if event.aggregate_type:
            headers[AGGREGATE_TYPE_HEADER] = event.aggregate_type
        return cls(
            id=event.id,
            topic=topic,
            payload=event.payload if payload is None else payload,
            event_type=event_type,
            headers=headers,
            occurred_at=event.occurred_at,
        )


__all__ = [
    "AGGREGATE_ID_HEADER",
    "AGGREGATE_TYPE_HEADER",
    "EVENT_TYPE_HEADER",
    "Message",
]
