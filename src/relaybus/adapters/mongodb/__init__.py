"""MongoDB adapter — outbox event store.

Requires the ``mongodb`` extra::

    pip install "relaybus[mongodb]"
"""

from relaybus.adapters.mongodb.event_store import MongoEventStore

__all__ = ["MongoEventStore"]
