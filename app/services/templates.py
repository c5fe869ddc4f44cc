"""Notification template rendering.

A ``NotificationTemplate`` row replaces the title and message of one
notification type on one channel. Placeholders are written ``{{ key }}``
and may use dotted paths into nested data (``{{ exam.subject }}``) or the
recipient (``{{ user.name }}``). Placeholders without a scalar value are
left as written. Types or channels without an active template keep the
title and message from the notification data.
"""

import logging
import re
from dataclasses import replace
from typing import Any

from sqlmodel import Session, select

from app.channels.base import NotificationPayload
from app.models.notification import NotificationChannel
from app.models.template import NotificationTemplate
from app.services.recipients import Recipient

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")
_MISSING = object()


def lookup(context: dict[str, Any], path: str) -> Any:
    """Resolve a dotted ``path`` in ``context``; a flat key wins over nesting."""
    if path in context:
        return context[path]
    value: Any = context
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def render_template(text: str, context: dict[str, Any]) -> str:
    """Fill ``{{ key }}`` placeholders in ``text`` from ``context``."""

    def substitute(match: re.Match) -> str:
        value = lookup(context, match.group(1))
        if value is _MISSING or value is None or isinstance(value, (dict, list, tuple, set)):
            return match.group(0)
        return str(value)

    return PLACEHOLDER_PATTERN.sub(substitute, text)


def template_context(recipient: Recipient, payload: NotificationPayload) -> dict[str, Any]:
    return {
        **payload.data,
        "title": payload.title,
        "message": payload.message,
        "user": {
            "id": str(recipient.id),
            "name": recipient.name,
            "email": recipient.email,
            "phone": recipient.phone,
        },
        "notification": {"type": payload.type},
    }


class TemplateCatalog:
    """Active templates of one notification type, keyed by channel."""

    def __init__(self, templates: dict[NotificationChannel, NotificationTemplate] | None = None) -> None:
        self.templates = templates or {}

    @classmethod
    def load(cls, session: Session, notification_type: str) -> "TemplateCatalog":
        rows = session.exec(
            select(NotificationTemplate)
            .where(NotificationTemplate.type == notification_type)
            .where(NotificationTemplate.is_active == True)  # noqa: E712
        ).all()
        return cls({row.channel: row for row in rows})

    def render(
        self,
        channel: NotificationChannel,
        recipient: Recipient,
        payload: NotificationPayload,
    ) -> NotificationPayload:
        """Payload for ``channel`` with the template applied, or ``payload`` unchanged."""
        template = self.templates.get(channel)
        if template is None:
            return payload

        context = template_context(recipient, payload)
        title = render_template(template.subject, context) if template.subject else payload.title
        message = render_template(template.content, context)
        logger.debug(
            "Rendered notification template",
            extra={"type": payload.type, "channel": channel.value, "template_id": str(template.id)},
        )
        return replace(
            payload,
            title=title,
            message=message,
            data={**payload.data, "title": title, "message": message},
        )
