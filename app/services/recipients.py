"""Recipient lookup for the notification core.

Turns user references into ``Recipient`` values carrying per-channel routing
information and the channels the user opted into for a notification type.
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlmodel import Session, select

from app.models.notification import NotificationChannel
from app.models.preference import NotificationPreference
from app.models.user import User

logger = logging.getLogger(__name__)

ALL_CHANNELS: frozenset[NotificationChannel] = frozenset(NotificationChannel)


@dataclass(frozen=True)
class Recipient:
    """A resolved notification recipient."""

    id: UUID
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    device_tokens: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()
    enabled_channels: frozenset[NotificationChannel] = field(default=ALL_CHANNELS)

    def allows(self, channel: NotificationChannel) -> bool:
        return channel in self.enabled_channels


def channels_from_preference(pref: NotificationPreference) -> frozenset[NotificationChannel]:
    """Return the channels a preference row opts into."""
    enabled = set()
    for channel in NotificationChannel:
        if getattr(pref, channel.value):
            enabled.add(channel)
    return frozenset(enabled)


class RecipientDirectory:
    """Resolves recipient references against the users table.

    Preference precedence: a row for the exact notification type, then the
    user's global row, then every channel enabled.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def resolve(
        self,
        recipient_ids: list[UUID] | list[str],
        notification_type: str,
    ) -> list[Recipient]:
        """Resolve ids into recipients, skipping unknown and duplicate ids.

        Args:
            recipient_ids: User ids (UUIDs or their string form)
            notification_type: Type used to pick preference rows

        Returns:
            Recipients in first-seen order
        """
        seen: set[UUID] = set()
        ordered: list[UUID] = []
        for raw in recipient_ids:
            try:
                user_id = raw if isinstance(raw, UUID) else UUID(str(raw))
            except ValueError:
                logger.warning(
                    "Skipping malformed recipient reference",
                    extra={"recipient": str(raw)},
                )
                continue
            if user_id not in seen:
                seen.add(user_id)
                ordered.append(user_id)

        if not ordered:
            return []

        users = {
            user.id: user
            for user in self.session.exec(select(User).where(User.id.in_(ordered))).all()
        }
        preferences = self._load_preferences(list(users), notification_type)

        recipients = []
        for user_id in ordered:
            user = users.get(user_id)
            if user is None:
                logger.warning(
                    "Recipient not found",
                    extra={"recipient": str(user_id)},
                )
                continue
            recipients.append(self._to_recipient(user, preferences.get(user_id)))
        return recipients

    def get(self, user_id: UUID, notification_type: str) -> Recipient | None:
        found = self.resolve([user_id], notification_type)
        return found[0] if found else None

    def _load_preferences(
        self,
        user_ids: list[UUID],
        notification_type: str,
    ) -> dict[UUID, NotificationPreference]:
        rows = self.session.exec(
            select(NotificationPreference)
            .where(NotificationPreference.user_id.in_(user_ids))
            .where(
                (NotificationPreference.notification_type == notification_type)
                | (NotificationPreference.notification_type == None)  # noqa: E711
            )
        ).all()

        chosen: dict[UUID, NotificationPreference] = {}
        for row in rows:
            current = chosen.get(row.user_id)
            # Type-specific rows win over the global row
            if current is None or row.notification_type is not None:
                chosen[row.user_id] = row
        return chosen

    @staticmethod
    def _to_recipient(user: User, pref: NotificationPreference | None) -> Recipient:
        return Recipient(
            id=user.id,
            email=user.email,
            name=user.name,
            phone=user.phone,
            device_tokens=tuple(user.device_tokens or ()),
            topics=tuple(user.push_topics or ()),
            enabled_channels=channels_from_preference(pref) if pref else ALL_CHANNELS,
        )
