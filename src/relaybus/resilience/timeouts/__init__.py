"""Resilience – timeout enforcement."""
from relaybus.resilience.timeouts.policy import TimeoutPolicy

__all__ = ["TimeoutPolicy"]
