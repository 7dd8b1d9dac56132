"""
Database models. Importing this package registers every table on Base.metadata.
"""

from modules.notifier.models.base import Base
from modules.notifier.models.notification import (
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from modules.notifier.models.template import NotificationTemplate
from modules.notifier.models.user import UserPreference

__all__ = [
    "Base",
    "Notification",
    "NotificationChannel",
    "NotificationPriority",
    "NotificationStatus",
    "NotificationTemplate",
    "NotificationType",
    "UserPreference",
]
