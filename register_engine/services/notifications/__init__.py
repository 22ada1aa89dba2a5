"""Notification services package."""

from register_engine.services.notifications.interface import (
    LoggingNotificationSink,
    NotificationSink,
)

__all__ = ["LoggingNotificationSink", "NotificationSink"]
