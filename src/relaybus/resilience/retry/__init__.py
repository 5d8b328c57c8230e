"""Resilience – retry policies."""
from relaybus.resilience.retry.tenacity_adapter import TenacityRetryPolicy

__all__ = ["TenacityRetryPolicy"]
