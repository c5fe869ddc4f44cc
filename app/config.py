"""Environment configuration for the School Notification Service."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.APP_ENV: str = os.getenv("APP_ENV", "local")
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.JWT_SECRET: str = os.getenv("JWT_SECRET", "")
        self.JWT_ALGORITHM: str = "HS256"
        self.FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

        # Scheduled notification worker
        self.WORKER_BATCH_SIZE: int = int(os.getenv("WORKER_BATCH_SIZE", "10"))
        self.WORKER_POLL_INTERVAL_SECONDS: int = int(
            os.getenv("WORKER_POLL_INTERVAL_SECONDS", "60")
        )

        # Channel senders
        self.CHANNEL_TIMEOUT_SECONDS: float = float(
            os.getenv("CHANNEL_TIMEOUT_SECONDS", "30")
        )
        self.MAIL_DRIVER: str = os.getenv("MAIL_DRIVER", "log")
        self.SENDGRID_API_KEY: str = os.getenv("SENDGRID_API_KEY", "")
        self.MAIL_FROM_ADDRESS: str = os.getenv(
            "MAIL_FROM_ADDRESS", "notifications@schoolms.test"
        )
        self.MAIL_FROM_NAME: str = os.getenv("MAIL_FROM_NAME", "School Management System")

        self.SMS_DRIVER: str = os.getenv("SMS_DRIVER", "log")
        self.SMS_FROM: str = os.getenv("SMS_FROM", "SchoolMS")
        self.SMS_COUNTRY_CODE: str = os.getenv("SMS_COUNTRY_CODE", "1")
        self.TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
        self.TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
        self.TWILIO_STATUS_CALLBACK: str = os.getenv("TWILIO_STATUS_CALLBACK", "")

        self.PUSH_DRIVER: str = os.getenv("PUSH_DRIVER", "log")
        self.FCM_PROJECT_ID: str = os.getenv("FCM_PROJECT_ID", "")
        self.FCM_ACCESS_TOKEN: str = os.getenv("FCM_ACCESS_TOKEN", "")
        self.PUSH_TOPIC_PREFIX: str = os.getenv("PUSH_TOPIC_PREFIX", "")
        self.PUSH_TOPIC_BATCH_SIZE: int = int(os.getenv("PUSH_TOPIC_BATCH_SIZE", "1000"))
        self.PUSH_MULTICAST_BATCH_SIZE: int = int(
            os.getenv("PUSH_MULTICAST_BATCH_SIZE", "500")
        )

        # Server-sent events stream
        self.STREAM_KEEPALIVE_SECONDS: int = int(os.getenv("STREAM_KEEPALIVE_SECONDS", "30"))
        self.STREAM_POLL_SECONDS: float = float(os.getenv("STREAM_POLL_SECONDS", "2"))
        self.STREAM_LOOKBACK_SECONDS: float = float(os.getenv("STREAM_LOOKBACK_SECONDS", "300"))

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def validate(self) -> None:
        """Validate that required environment variables are set."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")
        if not self.JWT_SECRET:
            raise ValueError("JWT_SECRET environment variable is required")
        if self.SMS_DRIVER == "twilio" and not (
            self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN
        ):
            raise ValueError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required for twilio")
        if self.PUSH_DRIVER == "fcm" and not self.FCM_PROJECT_ID:
            raise ValueError("FCM_PROJECT_ID environment variable is required for fcm")
        if self.MAIL_DRIVER == "sendgrid" and not self.SENDGRID_API_KEY:
            raise ValueError("SENDGRID_API_KEY environment variable is required for sendgrid")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
