"""Configuration package."""

from register_engine.config.settings import (
    AppSettings,
    GeminiSettings,
    NotificationSettings,
    ReconciliationSettings,
    Settings,
    StorageSettings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "NotificationSettings",
    "ReconciliationSettings",
    "Settings",
    "StorageSettings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
