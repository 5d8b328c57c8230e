"""Config settings – Settings base class."""
from __future__ import annotations

import dataclasses
from typing import Any, ClassVar

REDACTED = "***"


@dataclasses.dataclass
class Settings:
    """Base class for env-driven settings dataclasses.

    Subclasses set ``_prefix`` to namespace their environment variables and
    list credential-bearing fields in ``_secret_fields`` so
    :meth:`safe_dict` can be logged.
    """

    _prefix: ClassVar[str] = ""
    _secret_fields: ClassVar[frozenset[str]] = frozenset()

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        """Override to add cross-field validation."""

    def safe_dict(self) -> dict[str, Any]:
        """Field values with secret fields masked when set."""
        values = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        for name in self._secret_fields:
            if values.get(name):
                values[name] = REDACTED
        return values


__all__ = ["REDACTED", "Settings"]
