"""Kernel messaging – MessageTransport port."""
from __future__ import annotations

import abc
from datetime import datetime

from relaybus.kernel.messaging.message import Message


class MessageTransport(abc.ABC):
    """Port: deliver messages to a distributed transport (Kafka, RabbitMQ, …).

    Implementations raise on failure; the outbox processor turns any
    exception into a failed attempt.
    """

    @abc.abstractmethod
    async def publish(self, message: Message) -> None:
        """Broadcast *message* on ``message.topic``."""

    @abc.abstractmethod
    async def send(self, destination: str, message: Message) -> None:
        """Deliver *message* point-to-point to *destination*."""

    @abc.abstractmethod
    async def schedule_publish(self, message: Message, when: datetime) -> None:
        """Publish *message* no earlier than *when*."""


__all__ = ["MessageTransport"]
