"""Application bus – EventBus façade."""
from relaybus.application.bus.event_bus import EventBus, EventBusMode

__all__ = ["EventBus", "EventBusMode"]
