"""In-app notification inbox.

Read access to a user's ``NotificationRecord``s and their read state.
``read_at`` only moves from unset to set; marking an already read record
leaves its timestamp untouched.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import Session, select

from app.models.notification import NotificationRecord
from app.services.errors import NotFoundError
from app.utils.datetime import utcnow

logger = logging.getLogger(__name__)


class InboxService:
    """Service for reading and acknowledging in-app notifications."""

    def list_notifications(
        self,
        session: Session,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[NotificationRecord], int]:
        """List notifications newest first.

        Returns:
            The requested page and the total matching count
        """
        query = select(NotificationRecord).where(NotificationRecord.user_id == user_id)
        count_query = (
            select(func.count())
            .select_from(NotificationRecord)
            .where(NotificationRecord.user_id == user_id)
        )
        if unread_only:
            query = query.where(NotificationRecord.read_at == None)  # noqa: E711
            count_query = count_query.where(NotificationRecord.read_at == None)  # noqa: E711

        total = session.exec(count_query).one()
        items = session.exec(
            query.order_by(NotificationRecord.created_at.desc()).offset(offset).limit(limit)
        ).all()
        return list(items), total

    def unread_count(self, session: Session, user_id: UUID) -> int:
        return session.exec(
            select(func.count())
            .select_from(NotificationRecord)
            .where(NotificationRecord.user_id == user_id)
            .where(NotificationRecord.read_at == None)  # noqa: E711
        ).one()

    def sync_since(
        self,
        session: Session,
        user_id: UUID,
        since: datetime | None,
        limit: int = 100,
    ) -> list[NotificationRecord]:
        """Records created after ``since``, oldest first."""
        query = select(NotificationRecord).where(NotificationRecord.user_id == user_id)
        if since is not None:
            query = query.where(NotificationRecord.created_at > since)
        return list(session.exec(
            query.order_by(NotificationRecord.created_at, NotificationRecord.id).limit(limit)
        ).all())

    def unread_after(
        self,
        session: Session,
        user_id: UUID,
        last_event_id: UUID,
    ) -> list[NotificationRecord]:
        """Unread records created after the record ``last_event_id``.

        Used to replay events a reconnecting stream client missed. An
        unknown id replays every unread record.
        """
        anchor = session.get(NotificationRecord, last_event_id)
        query = (
            select(NotificationRecord)
            .where(NotificationRecord.user_id == user_id)
            .where(NotificationRecord.read_at == None)  # noqa: E711
        )
        if anchor is not None and anchor.user_id == user_id:
            query = query.where(NotificationRecord.created_at > anchor.created_at)
        return list(session.exec(query.order_by(NotificationRecord.created_at)).all())

    def mark_as_read(self, session: Session, user_id: UUID, notification_id: UUID) -> NotificationRecord:
        """Mark one notification read.

        Raises:
            NotFoundError: Missing, or owned by another user
        """
        record = session.get(NotificationRecord, notification_id)
        if record is None or record.user_id != user_id:
            raise NotFoundError(f"Notification {notification_id} not found")

        if record.read_at is None:
            record.read_at = utcnow()
            session.add(record)
            session.commit()
            session.refresh(record)
        return record

    def mark_all_as_read(self, session: Session, user_id: UUID) -> int:
        """Mark every unread notification read.

        Returns:
            Number of records updated
        """
        result = session.execute(
            update(NotificationRecord)
            .where(NotificationRecord.user_id == user_id)
            .where(NotificationRecord.read_at == None)  # noqa: E711
            .values(read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        session.commit()
        session.expire_all()

        logger.info(
            "Marked all notifications read",
            extra={"user_id": str(user_id), "updated": result.rowcount},
        )
        return result.rowcount


_service_instance: InboxService | None = None


def get_inbox_service() -> InboxService:
    """Get or create the inbox service singleton."""
    global _service_instance
    if _service_instance is None:
        _service_instance = InboxService()
    return _service_instance
