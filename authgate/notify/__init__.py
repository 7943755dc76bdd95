"""
Notification channels for AuthGate.
"""

from .channel import (
    Notification,
    NotificationChannel,
    MemoryNotificationChannel,
    LoggingNotificationChannel,
    HttpEmailChannel,
    create_notification_channel,
)

__all__ = [
    "Notification",
    "NotificationChannel",
    "MemoryNotificationChannel",
    "LoggingNotificationChannel",
    "HttpEmailChannel",
    "create_notification_channel",
]
