"""Kernel time – the clock the outbox stamps records with.

Every timestamp relaybus writes (``created_at``, ``published_at``) comes from
a :class:`Clock` and is a timezone-aware UTC ``datetime``.
"""
from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock, always UTC."""

    def now(self) -> datetime:
        return utc_now()


class FrozenClock:
    """Clock that only moves when told to.

    Naive datetimes are rejected so tests cannot mix local and UTC time.
    """

    def __init__(self, fixed: datetime) -> None:
        self._fixed = _as_utc(fixed)

    def now(self) -> datetime:
        return self._fixed

    def set(self, when: datetime) -> None:
        self._fixed = _as_utc(when)

    def advance(self, **kwargs: int | float) -> None:
        """Move forward by ``timedelta(**kwargs)``."""
        self._fixed += timedelta(**kwargs)


def utc_now() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"Clock times must be timezone-aware, got naive {value!r}")
    return value.astimezone(UTC)


__all__ = ["Clock", "FrozenClock", "SystemClock", "utc_now"]
