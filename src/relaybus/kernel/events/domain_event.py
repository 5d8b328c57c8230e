"""Domain events – the unit handed to the event bus."""

from __future__ import annotations

import dataclasses
import functools
import types
import typing
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID, uuid4

_PARSERS: dict[type, Any] = {
    datetime: datetime.fromisoformat,
    date: date.fromisoformat,
    UUID: UUID,
    Decimal: Decimal,
}

# Annotations that cannot be resolved (classes defined in a local scope)
# still revive the common scalar names.
_NAMED_TYPES: dict[str, type] = {t.__name__: t for t in _PARSERS}


@dataclasses.dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base class for domain events.

    ``event_type`` is a logical string tag used for routing and decoding.
    It defaults to the class name; set it explicitly to decouple the wire
    name from the Python class.

    Field values survive :meth:`to_dict` / :meth:`from_dict` with their
    annotated types: datetimes, dates, UUIDs, decimals, enums, nested
    dataclasses and lists, tuples or dicts of those.

    Example::

        @dataclasses.dataclass(frozen=True, kw_only=True)
        class OrderPlaced(DomainEvent):
            event_type: ClassVar[str] = "order.placed"
            order_id: str
            total_cents: int
    """

    event_type: ClassVar[str] = ""

    event_id: str = dataclasses.field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))
    aggregate_id: str | None = None
    aggregate_type: str | None = None
    correlation_id: str | None = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if not cls.__dict__.get("event_type"):
            cls.event_type = cls.__name__

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly dict of every field."""
        return {f.name: _plain(getattr(self, f.name)) for f in dataclasses.fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomainEvent:
        """Rebuild an event from :meth:`to_dict` output; unknown keys are ignored."""
        return _build(cls, data)


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return _plain(value.value)
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


@functools.cache
def _field_types(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError):
        return {f.name: f.type for f in dataclasses.fields(cls)}


def _build(cls: type, data: dict[str, Any]) -> Any:
    hints = _field_types(cls)
    kwargs = {
        f.name: _revive(hints.get(f.name, Any), data[f.name])
        for f in dataclasses.fields(cls)
        if f.init and f.name in data
    }
    return cls(**kwargs)


def _revive(tp: Any, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(tp, str):
        tp = _NAMED_TYPES.get(tp.removesuffix(" | None").strip(), Any)
    if tp is Any:
        return value

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin in (typing.Union, types.UnionType):
        arms = [a for a in args if a is not type(None)]
        return _revive(arms[0], value) if len(arms) == 1 else value
    if origin in (list, set, frozenset) and isinstance(value, list):
        return origin(_revive(args[0] if args else Any, v) for v in value)
    if origin is tuple and isinstance(value, list):
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(_revive(args[0], v) for v in value)
        if args:
            return tuple(_revive(a, v) for a, v in zip(args, value))
        return tuple(value)
    if origin is dict and isinstance(value, dict):
        inner = args[1] if len(args) == 2 else Any
        return {k: _revive(inner, v) for k, v in value.items()}

    if not isinstance(tp, type) or isinstance(value, tp):
        return value
    parser = _PARSERS.get(tp)
    if parser is not None and isinstance(value, str):
        return parser(value)
    if issubclass(tp, Enum):
        return tp(value)
    if dataclasses.is_dataclass(tp) and isinstance(value, dict):
        return _build(tp, value)
    return value


__all__ = ["DomainEvent"]
