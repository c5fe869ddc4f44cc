"""In-app (database) channel."""

from sqlmodel import Session, select

from app.channels.base import ChannelSender, DeliveryResult, NotificationPayload
from app.models.notification import NotificationChannel, NotificationRecord
from app.services.recipients import Recipient


class DatabaseChannelSender(ChannelSender):
    """Stores the notification as an in-app record for the recipient.

    Records are unique per (recipient, origin key): re-delivering the same
    origin returns the existing record instead of inserting another one.
    """

    channel = NotificationChannel.DATABASE

    def __init__(self, session: Session, **kwargs) -> None:
        super().__init__(**kwargs)
        self.session = session

    def find_existing(self, recipient: Recipient, origin_key: str) -> NotificationRecord | None:
        return self.session.exec(
            select(NotificationRecord)
            .where(NotificationRecord.user_id == recipient.id)
            .where(NotificationRecord.origin_key == origin_key)
        ).first()

    def deliver(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        existing = self.find_existing(recipient, payload.origin_key)
        if existing is not None:
            self._logger.debug(
                "Notification record already exists",
                extra={"notification_id": str(existing.id), "origin_key": payload.origin_key},
            )
            return DeliveryResult.ok(self.channel, str(existing.id))

        record = NotificationRecord(
            user_id=recipient.id,
            type=payload.type,
            origin_key=payload.origin_key,
            data=payload.data,
        )
        with self.session.begin_nested():
            self.session.add(record)

        return DeliveryResult.ok(self.channel, str(record.id))
