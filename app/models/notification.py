"""Delivered notification and delivery log models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.utils.datetime import utcnow


class NotificationChannel(str, Enum):
    """Notification delivery channels."""
    DATABASE = "database"
    MAIL = "mail"
    SMS = "sms"
    PUSH = "push"


class NotificationRecord(SQLModel, table=True):
    """In-app notification delivered to a single recipient.

    ``origin_key`` identifies the event that produced it; the unique
    constraint keeps re-deliveries of the same event from duplicating rows.
    """

    __tablename__ = "notifications"
    __table_args__ = (UniqueConstraint("user_id", "origin_key"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    type: str = Field(max_length=100, index=True)
    origin_key: str = Field(max_length=255)
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    channel_results: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    read_at: datetime | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)


class DeliveryLog(SQLModel, table=True):
    """Immutable record of one (recipient, channel) delivery attempt."""

    __tablename__ = "notification_deliveries"
    __table_args__ = (UniqueConstraint("user_id", "channel", "origin_key"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    notification_id: UUID | None = Field(default=None, foreign_key="notifications.id")
    type: str = Field(max_length=100)
    origin_key: str = Field(max_length=255)
    channel: NotificationChannel
    success: bool
    provider_message_id: str | None = Field(default=None, max_length=255)
    error_message: str | None = Field(default=None)
    attempted_at: datetime = Field(default_factory=utcnow)


class NotificationResponse(SQLModel):
    """Schema for notification response (one server-push event)."""

    id: UUID
    type: str
    data: dict[str, Any]
    channel_results: dict[str, Any] = {}
    read_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(SQLModel):
    """Schema for notification list response."""

    data: list[NotificationResponse]
    total: int
    unread: int


class UnreadCountResponse(SQLModel):
    """Schema for unread count response."""

    count: int


class MarkReadResponse(SQLModel):
    """Schema for mark-as-read responses."""

    success: bool
    updated: int
