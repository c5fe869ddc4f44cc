"""User entity model (notification recipient)."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.utils.datetime import utcnow


class UserBase(SQLModel):
    """Base User schema."""

    email: str = Field(max_length=255, unique=True, index=True)
    name: str | None = Field(default=None, max_length=255)


class User(UserBase, table=True):
    """User database model.

    Owned by the wider school application; the notification core only reads
    routing information from it.
    """

    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    phone: str | None = Field(default=None, max_length=32)
    device_tokens: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    push_topics: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_admin: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

