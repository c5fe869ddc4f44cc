"""Scheduled notification service.

Owns the ScheduledNotification lifecycle:
    pending -> processing -> sent | failed
    sent (recurring) -> pending at the next occurrence
    pending -> cancelled

Recurring entries are rescheduled relative to the processing time, so a
late run shifts every later occurrence by the same delay.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, select

from app.config import get_settings
from app.models.notification import NotificationChannel
from app.models.scheduled_notification import ScheduledNotification, ScheduledStatus
from app.services.dispatcher import NotificationDispatcher, build_dispatcher, normalize_channels
from app.services.errors import NotFoundError
from app.services.notification_types import DEFAULT_REGISTRY, NotificationTypeRegistry
from app.services.schedules import calculate_scheduled_at, parse_schedule
from app.utils.datetime import utcnow
from app.workers.base import WorkerResult
from app.workers.scheduled_worker import ScheduledNotificationWorker

logger = logging.getLogger(__name__)


class ScheduledNotificationService:
    """Service for creating, cancelling and processing scheduled notifications."""

    def __init__(self, registry: NotificationTypeRegistry = DEFAULT_REGISTRY) -> None:
        self.registry = registry

    def schedule(
        self,
        session: Session,
        name: str,
        notification_type: str,
        channels: list[NotificationChannel | str],
        recipients: list[UUID | str],
        data: dict[str, Any],
        schedule: dict[str, Any],
        created_by: UUID | None = None,
        now: datetime | None = None,
    ) -> ScheduledNotification:
        """Create a scheduled notification.

        Args:
            session: Database session
            name: Human readable name
            notification_type: Registered notification type
            channels: Requested channels (empty for the type's defaults)
            recipients: Recipient user ids
            data: Payload passed to the channel senders
            schedule: Raw schedule specification
            created_by: Creating user, used for ownership checks on cancel
            now: Creation time (defaults to the current time)

        Returns:
            The persisted ScheduledNotification

        Raises:
            InvalidScheduleError: Malformed schedule or one-time schedule in the past
            UnknownNotificationTypeError: Type not in the registry
        """
        now = now or utcnow()
        self.registry.require(notification_type)
        spec = parse_schedule(schedule)
        scheduled_at = calculate_scheduled_at(spec, now)

        notification = ScheduledNotification(
            name=name,
            type=notification_type,
            channels=[c.value for c in normalize_channels(channels)],
            recipients=list(dict.fromkeys(str(r) for r in recipients)),
            data=data,
            schedule=spec.model_dump(mode="json", exclude_none=True),
            scheduled_at=scheduled_at,
            status=ScheduledStatus.PENDING,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        session.add(notification)
        session.commit()
        session.refresh(notification)

        logger.info(
            f"Scheduled notification {notification.id}",
            extra={
                "scheduled_id": str(notification.id),
                "type": notification_type,
                "scheduled_at": scheduled_at.isoformat(),
            },
        )
        return notification

    def get(
        self,
        session: Session,
        notification_id: UUID,
        user_id: UUID | None = None,
    ) -> ScheduledNotification:
        """Fetch an entry, optionally restricted to its creator.

        Raises:
            NotFoundError: Missing, or not created by ``user_id``
        """
        notification = session.get(ScheduledNotification, notification_id)
        if notification is None or (user_id is not None and notification.created_by != user_id):
            raise NotFoundError(f"Scheduled notification {notification_id} not found")
        return notification

    def list_notifications(
        self,
        session: Session,
        status: ScheduledStatus | None = None,
        created_by: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ScheduledNotification], int]:
        query = select(ScheduledNotification)
        count_query = select(func.count()).select_from(ScheduledNotification)
        if status is not None:
            query = query.where(ScheduledNotification.status == status)
            count_query = count_query.where(ScheduledNotification.status == status)
        if created_by is not None:
            query = query.where(ScheduledNotification.created_by == created_by)
            count_query = count_query.where(ScheduledNotification.created_by == created_by)

        total = session.exec(count_query).one()
        items = session.exec(
            query.order_by(ScheduledNotification.scheduled_at.desc()).offset(offset).limit(limit)
        ).all()
        return list(items), total

    def cancel(
        self,
        session: Session,
        notification_id: UUID,
        by_user: UUID | None = None,
    ) -> bool:
        """Cancel a pending entry.

        Returns:
            True if cancelled, False if the entry is no longer pending

        Raises:
            NotFoundError: Missing, or not created by ``by_user``
        """
        notification = self.get(session, notification_id, user_id=by_user)
        if notification.status != ScheduledStatus.PENDING:
            logger.info(
                f"Refusing to cancel scheduled notification in status {notification.status.value}",
                extra={"scheduled_id": str(notification_id)},
            )
            return False

        notification.status = ScheduledStatus.CANCELLED
        notification.updated_at = utcnow()
        session.add(notification)
        session.commit()

        logger.info(
            f"Cancelled scheduled notification {notification_id}",
            extra={"scheduled_id": str(notification_id)},
        )
        return True

    def process_due(
        self,
        session: Session,
        limit: int | None = None,
        now: datetime | None = None,
        dispatcher_factory: Callable[[Session], NotificationDispatcher] = build_dispatcher,
    ) -> WorkerResult:
        """Process up to ``limit`` due entries.

        ``limit=0`` processes nothing; None uses ``WORKER_BATCH_SIZE``.
        One entry's failure is recorded on that entry and does not stop
        the batch.
        """
        worker = ScheduledNotificationWorker(
            batch_size=limit if limit is not None else get_settings().WORKER_BATCH_SIZE,
            now=now,
            dispatcher_factory=dispatcher_factory,
        )
        return worker.run(session)

    def get_upcoming(
        self,
        session: Session,
        limit: int = 10,
    ) -> list[ScheduledNotification]:
        """Pending entries in run order."""
        return list(session.exec(
            select(ScheduledNotification)
            .where(ScheduledNotification.status == ScheduledStatus.PENDING)
            .order_by(ScheduledNotification.scheduled_at)
            .limit(limit)
        ).all())

    def get_stats(self, session: Session) -> dict[str, int]:
        """Count entries per status."""
        rows = session.exec(
            select(ScheduledNotification.status, func.count())
            .group_by(ScheduledNotification.status)
        ).all()

        stats = {status.value: 0 for status in ScheduledStatus}
        for status, count in rows:
            stats[ScheduledStatus(status).value] = count
        stats["total"] = sum(stats.values())
        return stats


# -----------------------------------------------------------------------------
# Singleton Service Instance
# -----------------------------------------------------------------------------

_service_instance: ScheduledNotificationService | None = None


def get_scheduled_notification_service() -> ScheduledNotificationService:
    """Get or create the scheduled notification service singleton."""
    global _service_instance
    if _service_instance is None:
        _service_instance = ScheduledNotificationService()
    return _service_instance
