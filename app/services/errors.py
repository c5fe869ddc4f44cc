"""Exceptions raised by the notification core.

Only precondition violations propagate to callers. Per-channel delivery
failures are recorded as failed ``DeliveryResult``s instead.
"""


class NotificationError(Exception):
    """Base class for notification core errors."""


class InvalidScheduleError(NotificationError):
    """Schedule specification is malformed or a one-time schedule is in the past."""


class NotFoundError(NotificationError):
    """Entity does not exist or is not owned by the requesting user."""


class UnknownNotificationTypeError(NotificationError):
    """Notification type has no entry in the type registry."""


class DispatchFailedError(NotificationError):
    """No (recipient, channel) pair of a dispatch was delivered."""
