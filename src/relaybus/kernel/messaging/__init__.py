"""Kernel messaging – outbox record, storage and transport ports."""
from relaybus.kernel.messaging.event_store import EventStore
from relaybus.kernel.messaging.message import (
    AGGREGATE_ID_HEADER,
    AGGREGATE_TYPE_HEADER,
    EVENT_TYPE_HEADER,
    Message,
)
from relaybus.kernel.messaging.stored_event import HANDLER_RETRY_HEADER, StoredEvent
from relaybus.kernel.messaging.transport import MessageTransport

__all__ = [
    "AGGREGATE_ID_HEADER",
    "AGGREGATE_TYPE_HEADER",
    "EVENT_TYPE_HEADER",
    "EventStore",
    "HANDLER_RETRY_HEADER",
    "Message",
    "MessageTransport",
    "StoredEvent",
]
