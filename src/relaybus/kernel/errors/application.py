"""Application-layer errors — wiring and delivery-policy outcomes."""

from __future__ import annotations

from typing import Any

from relaybus.kernel.errors.base import BaseError


class ApplicationError(BaseError):
    """Cross-cutting application-layer concern."""

    default_code = "application_error"


class ConfigurationError(ApplicationError):
    """Components were wired or configured inconsistently.

    Raised at construction time (never at publish time) so a misconfigured
    service fails on startup.
    """

    default_code = "configuration_error"


class TerminalFailureError(ApplicationError):
    """An outbox event exhausted its retry budget."""

    default_code = "terminal_failure"

    def __init__(
        self,
        event_id: str,
        max_retry_attempts: int,
        **kwargs: Any,
    ) -> None:
        super().__init__(f"Max retry attempts ({max_retry_attempts}) exceeded", **kwargs)
        self.event_id = event_id
        self.max_retry_attempts = max_retry_attempts


__all__ = [
    "ApplicationError",
    "ConfigurationError",
    "TerminalFailureError",
]
