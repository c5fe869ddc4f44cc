"""NotificationPreference entity model."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from app.utils.datetime import utcnow


class NotificationPreference(SQLModel, table=True):
    """Per-user channel opt-in flags.

    A row with ``notification_type`` set applies to that type only and
    overrides the user's global row (``notification_type`` is None).
    """

    __tablename__ = "notification_preferences"
    __table_args__ = (UniqueConstraint("user_id", "notification_type"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    notification_type: str | None = Field(default=None, max_length=100)
    database: bool = Field(default=True)
    mail: bool = Field(default=True)
    sms: bool = Field(default=True)
    push: bool = Field(default=True)
    updated_at: datetime = Field(default_factory=utcnow)


class PreferenceUpdate(SQLModel):
    """Schema for updating a preference row."""

    notification_type: str | None = Field(default=None, max_length=100)
    database: bool = True
    mail: bool = True
    sms: bool = True
    push: bool = True


class PreferenceResponse(SQLModel):
    """Schema for preference response."""

    notification_type: str | None
    database: bool
    mail: bool
    sms: bool
    push: bool
    updated_at: datetime

    model_config = {"from_attributes": True}
