"""SQLAlchemy adapter – relational outbox store and session factory."""
from relaybus.adapters.sqlalchemy.event_store import SqlAlchemyEventStore, outbox_table
from relaybus.adapters.sqlalchemy.session import SqlAlchemySessionFactory

__all__ = ["SqlAlchemyEventStore", "SqlAlchemySessionFactory", "outbox_table"]
