"""Notificaciones salientes (push local y correo)."""

from .sink import (
    BackgroundNotificationSink,
    Notification,
    NotificationChannel,
    NotificationSink,
    Notifier,
)
from .push import PushNotifier
from .mailer import EmailNotifier

__all__ = [
    "BackgroundNotificationSink",
    "Notification",
    "NotificationChannel",
    "NotificationSink",
    "Notifier",
    "PushNotifier",
    "EmailNotifier",
]
