"""Configuration module for localshelf."""

from .settings import (
    ArtworkSettings,
    DatabaseSettings,
    LoggingSettings,
    Settings,
    StorageSettings,
    WatcherSettings,
    get_settings,
)

__all__ = [
    "ArtworkSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "Settings",
    "StorageSettings",
    "WatcherSettings",
    "get_settings",
]
