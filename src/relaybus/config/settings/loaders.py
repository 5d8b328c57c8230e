"""Config settings – EnvSettingsLoader, DotenvSettingsLoader."""
from __future__ import annotations

import abc
import dataclasses
import os
from collections.abc import Mapping
from typing import Any, Callable, TypeVar

from relaybus.config.settings.base import Settings
from relaybus.config.validation import (
    ConfigError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)

T = TypeVar("T", bound=Settings)

_NONE_LITERALS = ("", "none", "null")
_TRUE_LITERALS = ("1", "true", "yes", "on")


def _to_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_LITERALS


_CONVERTERS: dict[str, Callable[[str], Any]] = {
    "bool": _to_bool,
    "int": int,
    "float": float,
    "str": str,
}


class SettingsLoader(abc.ABC):
    """Port: load settings from an external source."""

    @abc.abstractmethod
    def load(self, settings_class: type[T]) -> T: ...


class EnvSettingsLoader(SettingsLoader):
    """Build settings from ``{PREFIX}_{FIELD}`` variables.

    ``RelaybusSettings.batch_size`` comes from ``RELAYBUS_BATCH_SIZE``.
    Values are converted using the field annotation (``int``, ``float``,
    ``bool``, ``str``, optionally ``| None``); unset fields keep their
    defaults.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    def load(self, settings_class: type[T]) -> T:
        environ = os.environ if self._environ is None else self._environ
        prefix = getattr(settings_class, "_prefix", "")
        values: dict[str, Any] = {}

        for field in dataclasses.fields(settings_class):  # type: ignore[arg-type]
            key = env_key(prefix, field.name)
            if key not in environ:
                if field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING:
                    raise MissingRequiredSettingError(key)
                continue
            raw = environ[key]
            try:
                values[field.name] = _convert(raw, field.type)
            except ValueError as exc:
                raise InvalidSettingValueError(key, raw, str(exc)) from exc

        try:
            return settings_class(**values)
        except ConfigError:
            raise
        except Exception as exc:
            raise ConfigError(f"Failed to load {settings_class.__name__}: {exc}", cause=exc) from exc


class DotenvSettingsLoader(SettingsLoader):
    """Read a ``.env`` file, layered under the real environment.

    The file is parsed with python-dotenv's ``dotenv_values`` and never
    written into ``os.environ``. With ``override=True`` the file wins over
    variables already set in the process.
    """

    def __init__(self, env_file: str = ".env", override: bool = False) -> None:
        self._env_file = env_file
        self._override = override

    def load(self, settings_class: type[T]) -> T:
        dotenv_values = _require_dotenv()
        from_file = {k: v for k, v in dotenv_values(self._env_file).items() if v is not None}
        if self._override:
            merged = {**os.environ, **from_file}
        else:
            merged = {**from_file, **os.environ}
        return EnvSettingsLoader(merged).load(settings_class)


def env_key(prefix: str, field_name: str) -> str:
    return f"{prefix}_{field_name}".upper().lstrip("_")


def _convert(raw: str, annotation: Any) -> Any:
    # Annotations are strings under ``from __future__ import annotations``.
    hint = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", str(annotation))
    parts = [p.strip() for p in hint.split("|")]
    optional = "None" in parts
    if optional and raw.strip().lower() in _NONE_LITERALS:
        return None
    base = next((p for p in parts if p != "None"), "str")
    return _CONVERTERS.get(base, str)(raw)


def _require_dotenv() -> Any:
    try:
        from dotenv import dotenv_values  # type: ignore[import-untyped]
    except ImportError as exc:
        raise ImportError("Install 'relaybus[dotenv]' to use DotenvSettingsLoader") from exc
    return dotenv_values


__all__ = ["DotenvSettingsLoader", "EnvSettingsLoader", "SettingsLoader", "env_key"]
