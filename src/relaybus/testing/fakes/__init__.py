"""Testing fakes – in-memory doubles for kernel ports."""
from relaybus.kernel.time import FrozenClock
from relaybus.testing.fakes.clock import FakeClock
from relaybus.testing.fakes.event_store import InMemoryEventStore
from relaybus.testing.fakes.transport import FlakyTransport, InMemoryMessageTransport

__all__ = [
    "FakeClock",
    "FlakyTransport",
    "FrozenClock",
    "InMemoryEventStore",
    "InMemoryMessageTransport",
]
