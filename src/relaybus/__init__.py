"""
relaybus – transactional outbox event delivery.

Import path convention::

    from relaybus.kernel.events import DomainEvent, EventTypeRegistry
    from relaybus.application.bus import EventBus, EventBusMode
    from relaybus.application.outbox import OutboxProcessor
    from relaybus.adapters.sqlalchemy import SqlAlchemyEventStore
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
