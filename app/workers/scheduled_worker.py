"""Scheduled notification worker.

Processes due ScheduledNotification entries:
1. Claims each due entry with a conditional pending -> processing update
2. Dispatches it to its recipients
3. Marks it sent, or failed with the reason
4. Puts recurring entries back to pending at their next occurrence
"""

import logging
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select

from app.models.scheduled_notification import ScheduledNotification, ScheduledStatus
from app.services.dispatcher import DispatchResult, NotificationDispatcher, build_dispatcher
from app.services.errors import DispatchFailedError
from app.services.schedules import next_occurrence
from app.utils.datetime import utcnow
from app.workers.base import WorkerBase

logger = logging.getLogger(__name__)


def origin_key_for(item: ScheduledNotification) -> str:
    """Origin key of one occurrence of a scheduled notification."""
    return f"scheduled:{item.id}:{item.scheduled_at.isoformat()}"


class ScheduledNotificationWorker(WorkerBase[ScheduledNotification]):
    """Worker for processing due scheduled notifications.

    ``now`` pins the processing time (tests, replays); otherwise the clock
    is read when the cycle starts.
    """

    def __init__(
        self,
        batch_size: int = 10,
        now: datetime | None = None,
        dispatcher_factory: Callable[[Session], NotificationDispatcher] = build_dispatcher,
    ) -> None:
        super().__init__(batch_size=batch_size)
        self.now = now
        self.dispatcher_factory = dispatcher_factory
        self.dispatch_results: dict[UUID, DispatchResult] = {}
        self._cycle_now: datetime | None = None

    @property
    def worker_name(self) -> str:
        return "ScheduledNotificationWorker"

    def current_time(self) -> datetime:
        if self.now is not None:
            return self.now
        if self._cycle_now is None:
            self._cycle_now = utcnow()
        return self._cycle_now

    def run(self, session: Session):
        self._cycle_now = None
        self.dispatch_results = {}
        return super().run(session)

    def fetch_pending(self, session: Session) -> list[ScheduledNotification]:
        """Fetch pending entries whose ``scheduled_at`` has passed, oldest first."""
        return list(session.exec(
            select(ScheduledNotification)
            .where(ScheduledNotification.status == ScheduledStatus.PENDING)
            .where(ScheduledNotification.scheduled_at <= self.current_time())
            .order_by(ScheduledNotification.scheduled_at)
            .limit(self.batch_size)
        ).all())

    def mark_processing(self, session: Session, item: ScheduledNotification) -> bool:
        """Claim the entry with a conditional update.

        The update only matches while the row is still pending, so exactly
        one concurrent caller sees ``rowcount == 1``.
        """
        item_id = item.id
        claimed = session.execute(
            update(ScheduledNotification)
            .where(ScheduledNotification.id == item_id)
            .where(ScheduledNotification.status == ScheduledStatus.PENDING)
            .values(status=ScheduledStatus.PROCESSING, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        session.commit()
        if claimed.rowcount != 1:
            return False
        session.refresh(item)
        return True

    def process_item(self, session: Session, item: ScheduledNotification) -> None:
        """Dispatch the entry.

        Raises:
            DispatchFailedError: If no recipient resolved or every
                attempted delivery failed
        """
        dispatcher = self.dispatcher_factory(session)
        result = dispatcher.send_to_users(
            item.type,
            item.recipients,
            item.data,
            channels=item.channels,
            origin_key=origin_key_for(item),
        )
        self.dispatch_results[item.id] = result

        if result.recipient_count == 0:
            raise DispatchFailedError("No resolvable recipients")
        if result.attempted > 0 and result.succeeded == 0:
            errors = "; ".join(f"{k}: {v}" for k, v in result.errors().items())
            raise DispatchFailedError(f"All {result.attempted} deliveries failed: {errors}")

    def mark_completed(self, session: Session, item: ScheduledNotification) -> None:
        """Mark sent; recurring entries go back to pending at the next occurrence."""
        now = self.current_time()
        item.sent_at = now
        item.run_count += 1
        item.failure_reason = None
        item.updated_at = now

        next_at = next_occurrence(item, now)
        if next_at is None:
            item.status = ScheduledStatus.SENT
        else:
            item.status = ScheduledStatus.PENDING
            item.scheduled_at = next_at
            logger.info(
                f"Rescheduled recurring notification {item.id}",
                extra={"scheduled_id": str(item.id), "next_run": next_at.isoformat()},
            )
        session.add(item)

    def mark_failed(self, session: Session, item: ScheduledNotification, error: str) -> None:
        item.status = ScheduledStatus.FAILED
        item.failure_reason = error
        item.updated_at = utcnow()
        session.add(item)

    def get_item_id(self, item: ScheduledNotification) -> UUID:
        return item.id
