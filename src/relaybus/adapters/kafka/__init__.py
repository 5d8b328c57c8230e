"""Kafka adapter – outbox message transport."""
from relaybus.adapters.kafka.serializer import KafkaRecordSerializer
from relaybus.adapters.kafka.transport import KafkaMessageTransport

__all__ = ["KafkaMessageTransport", "KafkaRecordSerializer"]
