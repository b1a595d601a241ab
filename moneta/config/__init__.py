"""Configuration package."""

from moneta.config.settings import (
    AppSettings,
    ArchiveSettings,
    MetricsSettings,
    SchedulerSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ArchiveSettings",
    "MetricsSettings",
    "SchedulerSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
