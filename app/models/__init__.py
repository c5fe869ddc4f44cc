"""SQLModel entities for the School Notification Service."""

from app.models.notification import DeliveryLog, NotificationChannel, NotificationRecord
from app.models.preference import NotificationPreference
from app.models.scheduled_notification import ScheduledNotification, ScheduledStatus
from app.models.template import NotificationTemplate
from app.models.user import User

__all__ = [
    "User",
    "NotificationPreference",
    "NotificationChannel",
    "NotificationRecord",
    "DeliveryLog",
    "NotificationTemplate",
    "ScheduledNotification",
    "ScheduledStatus",
]
