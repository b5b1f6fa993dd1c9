"""Shared components: configuration and the cached settings accessor."""

from autologistics.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    FeeSettings,
    LifecycleSettings,
    NotificationSettings,
    SchedulingSettings,
    Settings,
    SMTPSettings,
    WorkerSettings,
)
from autologistics.core.settings import (
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "ConfigValidationError",
    "DatabaseSettings",
    "Environment",
    "FeeSettings",
    "LifecycleSettings",
    "NotificationSettings",
    "SMTPSettings",
    "SchedulingSettings",
    "Settings",
    "WorkerSettings",
    "clear_settings_cache",
    "get_settings",
]
