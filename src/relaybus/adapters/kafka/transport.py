"""Kafka adapter – KafkaMessageTransport."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from relaybus.adapters.kafka.serializer import (
    DELIVER_AT_HEADER,
    TARGET_TOPIC_HEADER,
    KafkaRecordSerializer,
)
from relaybus.kernel.errors import DeliveryError
from relaybus.kernel.messaging import Message, MessageTransport
from relaybus.kernel.time import Clock, SystemClock
from relaybus.observability.logging import get_logger


def _require_aiokafka() -> Any:
    try:
        import aiokafka  # type: ignore[import-untyped]
        return aiokafka
    except ImportError as exc:
        raise ImportError("Install 'relaybus[kafka]' to use the Kafka adapter") from exc


class KafkaMessageTransport(MessageTransport):
    """aiokafka-backed :class:`MessageTransport`.

    ``publish`` waits for the broker acknowledgement so a failed send is a
    failed delivery attempt. Kafka has no native delayed delivery: a message
    scheduled in the future goes to *delay_topic* with ``deliver-at`` and
    ``target-topic`` headers for a relay consumer, and is rejected with
    :class:`DeliveryError` when no delay topic is configured.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        *,
        delay_topic: str | None = None,
        serializer: KafkaRecordSerializer | None = None,
        clock: Clock | None = None,
        logger: Any = None,
        **producer_kwargs: Any,
    ) -> None:
        aiokafka = _require_aiokafka()
        self._producer = aiokafka.AIOKafkaProducer(bootstrap_servers=bootstrap_servers, **producer_kwargs)
        self._delay_topic = delay_topic
        self._serializer = serializer or KafkaRecordSerializer()
        self._clock = clock or SystemClock()
        self._log = logger or get_logger(__name__)
        self._started = False

    async def start(self) -> None:
        await self._producer.start()
        self._started = True

    async def stop(self) -> None:
        await self._producer.stop()
        self._started = False

    async def __aenter__(self) -> "KafkaMessageTransport":
        await self.start()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.stop()

    async def publish(self, message: Message) -> None:
        await self._send(message.topic, message)

    async def send(self, destination: str, message: Message) -> None:
        await self._send(destination, message)

    async def schedule_publish(self, message: Message, when: datetime) -> None:
        if when <= self._clock.now():
            await self._send(message.topic, message)
            return
        if self._delay_topic is None:
            raise DeliveryError(
                f"Kafka cannot defer message {message.id} without a delay topic",
                event_ids=[message.id],
            )
        await self._send(
            self._delay_topic,
            message,
            **{DELIVER_AT_HEADER: when.isoformat(), TARGET_TOPIC_HEADER: message.topic},
        )

    async def _send(self, topic: str, message: Message, **extra_headers: str) -> None:
        if not self._started:
            await self.start()
        await self._producer.send_and_wait(
            topic,
            value=self._serializer.value(message),
            key=self._serializer.key(message),
            headers=self._serializer.headers(message, **extra_headers),
        )
        self._log.debug("kafka.published", topic=topic, message_id=message.id, event_type=message.event_type)


__all__ = ["KafkaMessageTransport"]
