"""Notification core services.

Services:
- notification_types.py: Type registry with default channels
- recipients.py: Recipient lookup and channel preferences
- dispatcher.py: Fan-out of one notification over recipients and channels
- scheduler.py: Scheduled notification engine
- inbox.py: In-app notification reads and read-state updates
- stream.py: Server-sent events feed
"""

from app.services.errors import (
    DispatchFailedError,
    InvalidScheduleError,
    NotFoundError,
    NotificationError,
    UnknownNotificationTypeError,
)

__all__ = [
    "NotificationError",
    "InvalidScheduleError",
    "NotFoundError",
    "UnknownNotificationTypeError",
    "DispatchFailedError",
]
