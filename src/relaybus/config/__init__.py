"""Config – settings dataclasses, loaders and validation errors."""

from relaybus.config.settings import (
    DotenvSettingsLoader,
    EnvSettingsLoader,
    RelaybusSettings,
    Settings,
    SettingsFactory,
    SettingsLoader,
)
from relaybus.config.validation import (
    ConfigError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)

__all__ = [
    "ConfigError",
    "DotenvSettingsLoader",
    "EnvSettingsLoader",
    "InvalidSettingValueError",
    "MissingRequiredSettingError",
    "RelaybusSettings",
    "Settings",
    "SettingsFactory",
    "SettingsLoader",
]
