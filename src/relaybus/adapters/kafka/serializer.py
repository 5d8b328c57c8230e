"""Kafka adapter – record (de)serialisation for the Message envelope."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from relaybus.kernel.errors import SerializationError
from relaybus.kernel.messaging import AGGREGATE_ID_HEADER, EVENT_TYPE_HEADER, Message

MESSAGE_ID_HEADER = "message-id"
OCCURRED_AT_HEADER = "occurred-at"
TARGET_TOPIC_HEADER = "target-topic"
DELIVER_AT_HEADER = "deliver-at"


class KafkaRecordSerializer:
    """Map :class:`Message` to aiokafka ``send`` arguments and back.

    The payload is sent as UTF-8 bytes; ids, type tag and timestamps travel
    as headers.
    """

    def value(self, message: Message) -> bytes:
        return message.payload.encode()

    def key(self, message: Message) -> bytes:
        # Partition by aggregate so per-aggregate order holds within a topic.
        return (message.headers.get(AGGREGATE_ID_HEADER) or message.id).encode()

    def headers(self, message: Message, **extra: str) -> list[tuple[str, bytes]]:
        headers = dict(message.headers)
        headers[MESSAGE_ID_HEADER] = message.id
        headers[EVENT_TYPE_HEADER] = message.event_type
        headers[OCCURRED_AT_HEADER] = message.occurred_at.isoformat()
        headers.update(extra)
        return [(k, v.encode()) for k, v in headers.items()]

    def deserialize(self, record: Any) -> Message:
        """Rebuild a :class:`Message` from an aiokafka ``ConsumerRecord``."""
        headers = {k: v.decode() for k, v in (record.headers or [])}
        try:
            event_type = headers[EVENT_TYPE_HEADER]
            message_id = headers.pop(MESSAGE_ID_HEADER)
            occurred_at = datetime.fromisoformat(headers.pop(OCCURRED_AT_HEADER))
        except (KeyError, ValueError) as exc:
            raise SerializationError(f"Kafka record is missing envelope headers: {exc}") from exc
        return Message(
            id=message_id,
            topic=record.topic,
            payload=record.value.decode() if isinstance(record.value, bytes) else record.value,
            event_type=event_type,
            headers=headers,
            occurred_at=occurred_at,
        )


__all__ = [
    "DELIVER_AT_HEADER",
    "MESSAGE_ID_HEADER",
    "OCCURRED_AT_HEADER",
    "TARGET_TOPIC_HEADER",
    "KafkaRecordSerializer",
]
