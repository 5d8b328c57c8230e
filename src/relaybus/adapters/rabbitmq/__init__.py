"""RabbitMQ adapter – outbox message transport."""
from relaybus.adapters.rabbitmq.transport import RabbitMQMessageTransport

__all__ = ["RabbitMQMessageTransport"]
