"""Resilience – timeouts and retries around outbox I/O."""
from relaybus.resilience.retry import TenacityRetryPolicy
from relaybus.resilience.timeouts import TimeoutPolicy

__all__ = ["TenacityRetryPolicy", "TimeoutPolicy"]
