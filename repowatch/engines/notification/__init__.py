"""Notification engine — queue drain, email rendering and SMTP delivery."""

from repowatch.engines.notification.mailer import Mailer
from repowatch.engines.notification.runner import DrainReport, NotificationRunner
from repowatch.engines.notification.sender import DeliveryResult, EmailNotificationSender

__all__ = [
    "DeliveryResult",
    "DrainReport",
    "EmailNotificationSender",
    "Mailer",
    "NotificationRunner",
]
