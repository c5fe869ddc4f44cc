"""Notification preference operations."""

from uuid import UUID

from sqlmodel import Session, select

from app.models.preference import NotificationPreference, PreferenceUpdate
from app.utils.datetime import utcnow


def get_user_preferences(session: Session, user_id: UUID) -> list[NotificationPreference]:
    """Get every preference row of a user, global row first."""
    rows = session.exec(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    ).all()
    return sorted(rows, key=lambda row: (row.notification_type is not None, row.notification_type or ""))


def upsert_preference(
    session: Session,
    user_id: UUID,
    data: PreferenceUpdate,
) -> NotificationPreference:
    """Create or replace the row for ``data.notification_type``."""
    query = select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    if data.notification_type is None:
        query = query.where(NotificationPreference.notification_type == None)  # noqa: E711
    else:
        query = query.where(NotificationPreference.notification_type == data.notification_type)

    preference = session.exec(query).first()
    if preference is None:
        preference = NotificationPreference(user_id=user_id, notification_type=data.notification_type)

    preference.database = data.database
    preference.mail = data.mail
    preference.sms = data.sms
    preference.push = data.push
    preference.updated_at = utcnow()

    session.add(preference)
    session.commit()
    session.refresh(preference)
    return preference


def delete_preference(session: Session, user_id: UUID, notification_type: str) -> bool:
    """Remove a type-specific row so the global row applies again."""
    preference = session.exec(
        select(NotificationPreference)
        .where(NotificationPreference.user_id == user_id)
        .where(NotificationPreference.notification_type == notification_type)
    ).first()
    if preference is None:
        return False
    session.delete(preference)
    session.commit()
    return True
