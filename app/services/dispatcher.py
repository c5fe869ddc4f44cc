"""Notification dispatcher.

Fans one logical notification out to every (recipient, channel) pair. Each
pair is attempted independently; a failure on one never prevents the
others. Every attempt is recorded as an immutable ``DeliveryLog`` row keyed
by (recipient, channel, origin key), so re-dispatching the same origin
returns the recorded outcome instead of sending again.

The dispatcher never commits; callers own the transaction.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.channels.base import ChannelSender, DeliveryResult, NotificationPayload
from app.channels.factory import build_channel_senders
from app.models.notification import DeliveryLog, NotificationChannel, NotificationRecord
from app.services.notification_types import DEFAULT_REGISTRY, NotificationTypeRegistry
from app.services.observability import NotificationLogSink
from app.services.recipients import Recipient, RecipientDirectory
from app.services.templates import TemplateCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecipientDelivery:
    """A delivery result together with the recipient it was for."""

    recipient_id: UUID
    result: DeliveryResult


@dataclass
class DispatchResult:
    """Aggregated outcome of one dispatch.

    Attributes:
        notification_type: Dispatched notification type
        origin_key: Origin key shared by every pair of this dispatch
        deliveries: One entry per attempted (recipient, channel) pair
        notification_ids: In-app records created or reused
        recipient_count: Recipients the dispatch was addressed to
    """

    notification_type: str
    origin_key: str
    deliveries: list[RecipientDelivery] = field(default_factory=list)
    notification_ids: list[UUID] = field(default_factory=list)
    recipient_count: int = 0

    @property
    def results(self) -> list[DeliveryResult]:
        return [delivery.result for delivery in self.deliveries]

    @property
    def attempted(self) -> int:
        return len(self.deliveries)

    @property
    def succeeded(self) -> int:
        return sum(1 for delivery in self.deliveries if delivery.result.success)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    def errors(self) -> dict[str, str]:
        """Map ``"<recipient>:<channel>"`` to the error of each failed pair."""
        return {
            f"{d.recipient_id}:{d.result.channel.value}": d.result.error or "unknown error"
            for d in self.deliveries
            if not d.result.success
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and API responses."""
        return {
            "notification_type": self.notification_type,
            "origin_key": self.origin_key,
            "recipients": self.recipient_count,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": self.errors(),
        }


def normalize_channels(channels: Iterable[NotificationChannel | str]) -> list[NotificationChannel]:
    """Convert to channel enums, dropping duplicates and keeping order."""
    ordered: list[NotificationChannel] = []
    for channel in channels:
        channel = NotificationChannel(channel)
        if channel not in ordered:
            ordered.append(channel)
    return ordered


class NotificationDispatcher:
    """Delivers notifications through the configured channel senders."""

    def __init__(
        self,
        session: Session,
        senders: dict[NotificationChannel, ChannelSender],
        registry: NotificationTypeRegistry = DEFAULT_REGISTRY,
        log_sink: NotificationLogSink | None = None,
    ) -> None:
        self.session = session
        self.senders = senders
        self.registry = registry
        self.log_sink = log_sink or NotificationLogSink()

    def send(
        self,
        notification_type: str,
        recipients: Iterable[Recipient],
        data: dict[str, Any],
        channels: Iterable[NotificationChannel | str] | None = None,
        origin_key: str | None = None,
    ) -> DispatchResult:
        """Dispatch a notification to every recipient.

        Args:
            notification_type: Registered notification type
            recipients: Resolved recipients
            data: Opaque payload mapping
            channels: Requested channels; the type's defaults when empty
            origin_key: Identifies the originating event for deduplication

        Channels with an active NotificationTemplate for the type get the
        rendered subject and content instead of the data's title and message.

        Returns:
            DispatchResult with one entry per attempted pair

        Raises:
            UnknownNotificationTypeError: If the type is not registered
        """
        default_channels = self.registry.default_channels(notification_type)
        requested = normalize_channels(channels or ()) or list(default_channels)
        origin_key = origin_key or f"dispatch:{uuid4()}"
        payload = NotificationPayload.from_data(notification_type, origin_key, data)
        templates = TemplateCatalog.load(self.session, notification_type)

        result = DispatchResult(notification_type=notification_type, origin_key=origin_key)
        for recipient in recipients:
            result.recipient_count += 1
            effective = [c for c in requested if recipient.allows(c)]
            # The in-app record goes first so other channels can reference it
            effective.sort(key=lambda c: c != NotificationChannel.DATABASE)

            record_id: UUID | None = None
            recipient_results: list[DeliveryResult] = []
            for channel in effective:
                rendered = templates.render(channel, recipient, payload)
                delivery = self._deliver(recipient, channel, rendered, record_id)
                if channel == NotificationChannel.DATABASE and delivery.success:
                    record_id = UUID(delivery.provider_message_id)
                    result.notification_ids.append(record_id)
                recipient_results.append(delivery)
                result.deliveries.append(RecipientDelivery(recipient.id, delivery))

            if record_id is not None:
                self._store_channel_results(record_id, recipient_results)

        logger.info("Dispatch complete", extra=result.to_dict())
        return result

    def send_to_users(
        self,
        notification_type: str,
        user_ids: Iterable[UUID | str],
        data: dict[str, Any],
        channels: Iterable[NotificationChannel | str] | None = None,
        origin_key: str | None = None,
    ) -> DispatchResult:
        """Resolve user ids against the users table, then ``send``."""
        self.registry.require(notification_type)
        recipients = RecipientDirectory(self.session).resolve(list(user_ids), notification_type)
        return self.send(notification_type, recipients, data, channels, origin_key)

    def _deliver(
        self,
        recipient: Recipient,
        channel: NotificationChannel,
        payload: NotificationPayload,
        record_id: UUID | None,
    ) -> DeliveryResult:
        existing = self._find_log(recipient.id, channel, payload.origin_key)
        if existing is not None:
            logger.debug(
                "Delivery already recorded",
                extra={
                    "recipient_id": str(recipient.id),
                    "channel": channel.value,
                    "origin_key": payload.origin_key,
                },
            )
            return DeliveryResult(
                channel=channel,
                success=existing.success,
                provider_message_id=existing.provider_message_id,
                error=existing.error_message,
                timestamp=existing.attempted_at,
            )

        self.log_sink.sending(payload.type, recipient.id, channel, payload.origin_key)
        sender = self.senders.get(channel)
        if sender is None:
            delivery = DeliveryResult.failed(channel, f"no sender configured for {channel.value}")
        else:
            delivery = sender.send(recipient, payload)

        if delivery.success:
            self.log_sink.sent(payload.type, recipient.id, delivery, payload.origin_key)
        else:
            self.log_sink.failed(payload.type, recipient.id, delivery, payload.origin_key)

        self._record(recipient, payload, delivery, record_id)
        return delivery

    def _find_log(
        self,
        recipient_id: UUID,
        channel: NotificationChannel,
        origin_key: str,
    ) -> DeliveryLog | None:
        return self.session.exec(
            select(DeliveryLog)
            .where(DeliveryLog.user_id == recipient_id)
            .where(DeliveryLog.channel == channel)
            .where(DeliveryLog.origin_key == origin_key)
        ).first()

    def _record(
        self,
        recipient: Recipient,
        payload: NotificationPayload,
        delivery: DeliveryResult,
        record_id: UUID | None,
    ) -> None:
        log = DeliveryLog(
            user_id=recipient.id,
            notification_id=record_id,
            type=payload.type,
            origin_key=payload.origin_key,
            channel=delivery.channel,
            success=delivery.success,
            provider_message_id=delivery.provider_message_id,
            error_message=delivery.error,
            attempted_at=delivery.timestamp,
        )
        try:
            with self.session.begin_nested():
                self.session.add(log)
        except IntegrityError:
            logger.warning(
                "Delivery log already written by a concurrent dispatch",
                extra={
                    "recipient_id": str(recipient.id),
                    "channel": delivery.channel.value,
                    "origin_key": payload.origin_key,
                },
            )

    def _store_channel_results(self, record_id: UUID, results: list[DeliveryResult]) -> None:
        record = self.session.get(NotificationRecord, record_id)
        if record is None:
            return
        merged = dict(record.channel_results or {})
        merged.update({r.channel.value: r.to_dict() for r in results})
        record.channel_results = merged
        self.session.add(record)


def build_dispatcher(
    session: Session,
    registry: NotificationTypeRegistry = DEFAULT_REGISTRY,
    log_sink: NotificationLogSink | None = None,
) -> NotificationDispatcher:
    """Create a dispatcher wired to the configured channel senders."""
    return NotificationDispatcher(
        session=session,
        senders=build_channel_senders(session),
        registry=registry,
        log_sink=log_sink,
    )
