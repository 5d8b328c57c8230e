"""Observability – structured logging helpers."""
from relaybus.observability.logging.factory import JsonLoggerFactory
from relaybus.observability.logging.processors import get_logger

__all__ = ["JsonLoggerFactory", "get_logger"]
