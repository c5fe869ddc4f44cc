"""Channel senders: database, mail, SMS and push transports."""

from app.channels.base import ChannelSender, DeliveryResult, NotificationPayload
from app.channels.factory import build_channel_senders

__all__ = [
    "ChannelSender",
    "DeliveryResult",
    "NotificationPayload",
    "build_channel_senders",
]
