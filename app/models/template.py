"""NotificationTemplate entity model."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from app.models.notification import NotificationChannel
from app.utils.datetime import utcnow


class NotificationTemplate(SQLModel, table=True):
    """Message text for one notification type on one channel.

    ``subject`` and ``content`` may hold ``{{ key }}`` placeholders filled
    from the notification data at delivery time. Inactive rows are ignored.
    """

    __tablename__ = "notification_templates"
    __table_args__ = (UniqueConstraint("type", "channel"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    type: str = Field(max_length=100, index=True)
    channel: NotificationChannel
    subject: str | None = Field(default=None, max_length=255)
    content: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
