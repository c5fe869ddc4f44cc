"""Build the channel sender mapping from settings."""

from functools import lru_cache

from sqlmodel import Session

from app.channels.base import ChannelSender
from app.channels.database import DatabaseChannelSender
from app.channels.mail import LogMailSender, SendGridMailSender
from app.channels.push import FcmPushSender, LogPushSender
from app.channels.sms import LogSmsSender, TwilioSmsSender
from app.config import Settings, get_settings
from app.models.notification import NotificationChannel


def build_mail_sender(settings: Settings) -> ChannelSender:
    if settings.MAIL_DRIVER == "sendgrid":
        return SendGridMailSender(
            api_key=settings.SENDGRID_API_KEY,
            from_address=settings.MAIL_FROM_ADDRESS,
            from_name=settings.MAIL_FROM_NAME,
            timeout=settings.CHANNEL_TIMEOUT_SECONDS,
        )
    if settings.MAIL_DRIVER != "log":
        raise ValueError(f"Unsupported mail driver: {settings.MAIL_DRIVER}")
    return LogMailSender(timeout=settings.CHANNEL_TIMEOUT_SECONDS)


def build_sms_sender(settings: Settings) -> ChannelSender:
    common = {
        "sender_id": settings.SMS_FROM,
        "country_code": settings.SMS_COUNTRY_CODE,
        "timeout": settings.CHANNEL_TIMEOUT_SECONDS,
    }
    if settings.SMS_DRIVER == "twilio":
        return TwilioSmsSender(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            status_callback=settings.TWILIO_STATUS_CALLBACK or None,
            **common,
        )
    if settings.SMS_DRIVER != "log":
        raise ValueError(f"Unsupported SMS driver: {settings.SMS_DRIVER}")
    return LogSmsSender(**common)


def build_push_sender(settings: Settings) -> ChannelSender:
    common = {
        "topic_prefix": settings.PUSH_TOPIC_PREFIX,
        "multicast_batch_size": settings.PUSH_MULTICAST_BATCH_SIZE,
        "timeout": settings.CHANNEL_TIMEOUT_SECONDS,
    }
    if settings.PUSH_DRIVER == "fcm":
        return FcmPushSender(
            project_id=settings.FCM_PROJECT_ID,
            access_token=settings.FCM_ACCESS_TOKEN,
            topic_batch_size=settings.PUSH_TOPIC_BATCH_SIZE,
            **common,
        )
    if settings.PUSH_DRIVER != "log":
        raise ValueError(f"Unsupported push driver: {settings.PUSH_DRIVER}")
    return LogPushSender(**common)


@lru_cache
def get_provider_senders() -> dict[NotificationChannel, ChannelSender]:
    """External provider senders, built once per process."""
    settings = get_settings()
    return {
        NotificationChannel.MAIL: build_mail_sender(settings),
        NotificationChannel.SMS: build_sms_sender(settings),
        NotificationChannel.PUSH: build_push_sender(settings),
    }


def build_channel_senders(session: Session) -> dict[NotificationChannel, ChannelSender]:
    """Return senders for every channel, with the database sender bound to ``session``."""
    settings = get_settings()
    senders: dict[NotificationChannel, ChannelSender] = {
        NotificationChannel.DATABASE: DatabaseChannelSender(
            session, timeout=settings.CHANNEL_TIMEOUT_SECONDS
        ),
    }
    senders.update(get_provider_senders())
    return senders
