"""Notification type registry.

Maps each notification type to the channels it is delivered on when the
caller does not request specific channels. Registries are immutable; use
``with_overrides`` to derive a variant (per tenant or in tests).
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from app.models.notification import NotificationChannel
from app.services.errors import UnknownNotificationTypeError

DATABASE = NotificationChannel.DATABASE
MAIL = NotificationChannel.MAIL
SMS = NotificationChannel.SMS
PUSH = NotificationChannel.PUSH

DEFAULT_NOTIFICATION_TYPES: Mapping[str, tuple[NotificationChannel, ...]] = {
    # System
    "system.alert": (DATABASE, MAIL),
    "system.maintenance": (DATABASE, MAIL, PUSH),
    "system.update": (DATABASE, MAIL),
    # User account
    "user.registered": (DATABASE, MAIL),
    "user.verified": (DATABASE, MAIL),
    "user.password_reset": (MAIL,),
    "user.password_updated": (MAIL,),
    "user.profile_updated": (DATABASE, MAIL),
    # Courses
    "course.enrolled": (DATABASE, MAIL),
    "course.completed": (DATABASE, MAIL, PUSH),
    "course.reminder": (DATABASE, MAIL, PUSH),
    "course.certificate_available": (DATABASE, MAIL),
    # Assignments
    "assignment.assigned": (DATABASE, MAIL),
    "assignment.submitted": (DATABASE, MAIL),
    "assignment.graded": (DATABASE, MAIL, PUSH),
    "assignment.reminder": (DATABASE, MAIL, PUSH),
    "assignment.overdue": (DATABASE, MAIL, SMS),
    # Exams
    "exam.scheduled": (DATABASE, MAIL),
    "exam.reminder": (DATABASE, MAIL, PUSH, SMS),
    "exam.result_available": (DATABASE, MAIL, PUSH),
    # Payments
    "payment.received": (DATABASE, MAIL),
    "payment.failed": (DATABASE, MAIL, SMS),
    "payment.refunded": (DATABASE, MAIL),
    "payment.reminder": (DATABASE, MAIL, SMS),
    # Refunds
    "refund.requested": (DATABASE, MAIL),
    "refund.approved": (DATABASE, MAIL, PUSH),
    "refund.rejected": (DATABASE, MAIL),
    "refund.processed": (DATABASE, MAIL, PUSH, SMS),
    # Support
    "support.ticket_created": (DATABASE, MAIL),
    "support.ticket_updated": (DATABASE, MAIL),
    "support.ticket_resolved": (DATABASE, MAIL, PUSH),
    "support.reply_received": (DATABASE, MAIL, PUSH),
}


class NotificationTypeRegistry:
    """Immutable notification type -> default channels mapping."""

    def __init__(
        self,
        types: Mapping[str, Iterable[NotificationChannel | str]] = DEFAULT_NOTIFICATION_TYPES,
    ) -> None:
        self._types = MappingProxyType({
            name: tuple(NotificationChannel(channel) for channel in channels)
            for name, channels in types.items()
        })

    def __contains__(self, notification_type: str) -> bool:
        return notification_type in self._types

    def __len__(self) -> int:
        return len(self._types)

    @property
    def types(self) -> Mapping[str, tuple[NotificationChannel, ...]]:
        return self._types

    def default_channels(self, notification_type: str) -> tuple[NotificationChannel, ...]:
        """Return the default channels for ``notification_type``.

        Raises:
            UnknownNotificationTypeError: If the type is not registered
        """
        try:
            return self._types[notification_type]
        except KeyError:
            raise UnknownNotificationTypeError(
                f"Unknown notification type: {notification_type}"
            ) from None

    def require(self, notification_type: str) -> None:
        self.default_channels(notification_type)

    def with_overrides(
        self,
        overrides: Mapping[str, Iterable[NotificationChannel | str]],
    ) -> "NotificationTypeRegistry":
        """Return a new registry with ``overrides`` added or replacing entries."""
        merged: dict[str, Iterable[NotificationChannel | str]] = dict(self._types)
        merged.update(overrides)
        return NotificationTypeRegistry(merged)


DEFAULT_REGISTRY = NotificationTypeRegistry()
