"""ScheduledNotification entity model and schedule specifications."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.models.notification import NotificationChannel
from app.utils.datetime import utcnow

# Schedule payloads carry a field literally named "datetime".
DateTime = datetime


class ScheduledStatus(str, Enum):
    """Scheduled notification lifecycle states."""
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OnceSchedule(BaseModel):
    """Fire exactly once at ``datetime``."""

    type: Literal["once"]
    datetime: DateTime
    timezone: str | None = None


class RecurringSchedule(BaseModel):
    """Fire every day, week or month.

    ``datetime`` optionally pins the first occurrence.
    """

    type: Literal["daily", "weekly", "monthly"]
    datetime: DateTime | None = None
    timezone: str | None = None


class CustomSchedule(BaseModel):
    """Fire every ``interval`` ``unit``s."""

    type: Literal["custom"]
    interval: int = PydanticField(default=1, ge=1)
    unit: Literal["minute", "hour", "day", "week", "month"] = "day"
    datetime: DateTime | None = None
    timezone: str | None = None


ScheduleSpec = Annotated[
    Union[OnceSchedule, RecurringSchedule, CustomSchedule],
    PydanticField(discriminator="type"),
]


class ScheduledNotification(SQLModel, table=True):
    """Scheduled notification database model."""

    __tablename__ = "scheduled_notifications"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=255)
    type: str = Field(max_length=100)
    channels: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    recipients: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    schedule: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    scheduled_at: datetime = Field(index=True)
    status: ScheduledStatus = Field(default=ScheduledStatus.PENDING, index=True)
    created_by: UUID | None = Field(default=None, foreign_key="users.id", index=True)
    failure_reason: str | None = Field(default=None)
    sent_at: datetime | None = Field(default=None)
    run_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_recurring(self) -> bool:
        return self.schedule.get("type") != "once"


class ScheduledNotificationCreate(SQLModel):
    """Schema for scheduled notification creation."""

    name: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=100)
    channels: list[NotificationChannel] = Field(default_factory=list)
    recipients: list[UUID] = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    schedule: dict[str, Any]


class ScheduledNotificationResponse(SQLModel):
    """Schema for scheduled notification response."""

    id: UUID
    name: str
    type: str
    channels: list[str]
    recipients: list[str]
    data: dict[str, Any]
    schedule: dict[str, Any]
    scheduled_at: datetime
    status: ScheduledStatus
    created_by: UUID | None
    failure_reason: str | None
    sent_at: datetime | None
    run_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ScheduledNotificationListResponse(SQLModel):
    """Schema for scheduled notification list response."""

    scheduled_notifications: list[ScheduledNotificationResponse]
    total: int


class ScheduledStatsResponse(SQLModel):
    """Counts of scheduled notifications per status."""

    total: int
    pending: int
    processing: int
    sent: int
    failed: int
    cancelled: int
