"""Kernel events – DomainEvent base class and the event type registry."""
from relaybus.kernel.events.domain_event import DomainEvent
from relaybus.kernel.events.registry import EventRegistration, EventTypeRegistry, IntegrationMapper

__all__ = ["DomainEvent", "EventRegistration", "EventTypeRegistry", "IntegrationMapper"]
