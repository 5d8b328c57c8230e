"""Config settings – env-based configuration."""
from relaybus.config.settings.base import Settings
from relaybus.config.settings.factory import SettingsFactory
from relaybus.config.settings.loaders import DotenvSettingsLoader, EnvSettingsLoader, SettingsLoader
from relaybus.config.settings.relaybus import RelaybusSettings

__all__ = [
    "DotenvSettingsLoader",
    "EnvSettingsLoader",
    "RelaybusSettings",
    "Settings",
    "SettingsFactory",
    "SettingsLoader",
]
