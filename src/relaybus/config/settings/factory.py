"""Config settings – SettingsFactory."""
from __future__ import annotations

import dataclasses
from typing import Any, Sequence, TypeVar

from relaybus.config.settings.base import Settings
from relaybus.config.settings.loaders import SettingsLoader
from relaybus.config.validation.errors import ConfigError, MissingRequiredSettingError
from relaybus.observability.logging import get_logger

T = TypeVar("T", bound=Settings)

logger = get_logger(__name__)


class SettingsFactory:
    """Build one settings object from layered sources.

    Sources apply in order (environment, then ``.env`` file, for example),
    then *overrides*. A source that fails to load is skipped with a warning;
    the values it would have provided fall back to earlier sources or to the
    field defaults.

    Example::

        settings = SettingsFactory.create(
            RelaybusSettings,
            [EnvSettingsLoader(), DotenvSettingsLoader(".env")],
            overrides={"batch_size": 10},
        )
    """

    @staticmethod
    def create(
        settings_cls: type[T],
        loaders: Sequence[SettingsLoader] | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> T:
        """Merge every source into *settings_cls*.

        Raises :class:`MissingRequiredSettingError` for a field without a
        default that no source supplied, and re-raises the class's own
        validation errors unchanged.
        """
        values: dict[str, Any] = {}
        for loader in loaders or ():
            values.update(_values_from(loader, settings_cls))
        values.update(overrides or {})

        missing = _required_fields(settings_cls) - values.keys()
        if missing:
            raise MissingRequiredSettingError(sorted(missing)[0])

        try:
            return settings_cls(**values)
        except ConfigError:
            raise
        except Exception as exc:
            raise ConfigError(f"Failed to construct {settings_cls.__name__}: {exc}", cause=exc) from exc


def _values_from(loader: SettingsLoader, settings_cls: type[Settings]) -> dict[str, Any]:
    try:
        loaded = loader.load(settings_cls)
    except Exception as exc:  # noqa: BLE001
        logger.warning("settings.loader_skipped", loader=type(loader).__name__, error=str(exc))
        return {}
    return {f.name: getattr(loaded, f.name) for f in dataclasses.fields(loaded)}  # type: ignore[arg-type]


def _required_fields(settings_cls: type[Settings]) -> set[str]:
    return {
        f.name
        for f in dataclasses.fields(settings_cls)  # type: ignore[arg-type]
        if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING
    }


__all__ = ["SettingsFactory"]
