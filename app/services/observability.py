"""Structured logging of the notification send lifecycle."""

import logging
from uuid import UUID

from app.channels.base import DeliveryResult
from app.models.notification import NotificationChannel


class NotificationLogSink:
    """Receives the sending / sent / failed lifecycle points of each delivery.

    The dispatcher calls these explicitly for every (recipient, channel)
    pair. Replace with another implementation to forward elsewhere.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("notifications.lifecycle")

    def sending(
        self,
        notification_type: str,
        recipient_id: UUID,
        channel: NotificationChannel,
        origin_key: str,
    ) -> None:
        self.logger.debug(
            "Sending notification",
            extra={
                "notification_type": notification_type,
                "recipient_id": str(recipient_id),
                "channel": channel.value,
                "origin_key": origin_key,
            },
        )

    def sent(
        self,
        notification_type: str,
        recipient_id: UUID,
        result: DeliveryResult,
        origin_key: str,
    ) -> None:
        self.logger.info(
            "Notification sent",
            extra={
                "notification_type": notification_type,
                "recipient_id": str(recipient_id),
                "channel": result.channel.value,
                "provider_message_id": result.provider_message_id,
                "origin_key": origin_key,
            },
        )

    def failed(
        self,
        notification_type: str,
        recipient_id: UUID,
        result: DeliveryResult,
        origin_key: str,
    ) -> None:
        self.logger.warning(
            "Notification failed",
            extra={
                "notification_type": notification_type,
                "recipient_id": str(recipient_id),
                "channel": result.channel.value,
                "error": result.error,
                "origin_key": origin_key,
            },
        )
