"""Channel sender abstraction.

Every transport (database, mail, SMS, push) implements ``ChannelSender``.
``send()`` is the boundary: provider and network errors raised by
``deliver()`` are converted into a failed ``DeliveryResult`` so a single
broken transport never aborts the dispatcher's fan-out loop.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

import httpx

from app.models.notification import NotificationChannel
from app.services.recipients import Recipient
from app.utils.datetime import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one (recipient, channel) delivery attempt.

    Attributes:
        channel: Channel the attempt went through
        success: Whether the provider accepted the message
        provider_message_id: Provider reference (record id for database)
        error: Error detail for failed attempts
        timestamp: When the attempt finished
    """

    channel: NotificationChannel
    success: bool
    provider_message_id: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def ok(cls, channel: NotificationChannel, message_id: str | None = None) -> "DeliveryResult":
        return cls(channel=channel, success=True, provider_message_id=message_id)

    @classmethod
    def failed(cls, channel: NotificationChannel, error: str) -> "DeliveryResult":
        return cls(channel=channel, success=False, error=error[:500])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON storage."""
        return {
            "channel": self.channel.value,
            "success": self.success,
            "provider_message_id": self.provider_message_id,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class NotificationPayload:
    """Channel-agnostic content of a notification."""

    type: str
    origin_key: str
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    action_url: str | None = None

    @classmethod
    def from_data(cls, notification_type: str, origin_key: str, data: dict[str, Any]) -> "NotificationPayload":
        """Build a payload from an opaque data mapping."""
        title = data.get("title") or data.get("subject") or notification_type
        message = data.get("message") or data.get("body") or ""
        return cls(
            type=notification_type,
            origin_key=origin_key,
            title=str(title),
            message=str(message),
            data=dict(data),
            action_url=data.get("action_url"),
        )


class ChannelSender(ABC):
    """Base class for all channel senders."""

    channel: ClassVar[NotificationChannel]

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def sender_name(self) -> str:
        return self.__class__.__name__

    def send(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        """Deliver ``payload`` to ``recipient``.

        Never raises: timeouts and provider errors become failed results.
        """
        try:
            return self.deliver(recipient, payload)
        except httpx.TimeoutException:
            self._logger.warning(
                f"[{self.sender_name}] Delivery timed out",
                extra={"recipient": str(recipient.id), "timeout": self.timeout},
            )
            return DeliveryResult.failed(self.channel, f"timeout after {self.timeout}s")
        except Exception as e:
            self._logger.error(
                f"[{self.sender_name}] Delivery failed",
                extra={"recipient": str(recipient.id), "error": str(e)},
                exc_info=True,
            )
            return DeliveryResult.failed(self.channel, str(e) or e.__class__.__name__)

    @abstractmethod
    def deliver(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        """Perform the provider call.

        May raise; ``send()`` converts exceptions into failed results.
        """
        pass
