"""Server-sent events feed of in-app notifications.

Each connected client gets an async generator that polls the user's inbox
for records it has not sent yet, emits them as
``notification`` events and sends a ``ping`` event on a fixed keepalive
interval. Polling the table lets records created by the worker process
reach clients connected to the API process.
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlmodel import Session

from app.models.notification import NotificationRecord, NotificationResponse
from app.services.inbox import get_inbox_service
from app.utils.datetime import utcnow

logger = logging.getLogger(__name__)

RECONNECT_HINT_MS = 3000
# Upper bound on rows read per poll
SCAN_LIMIT = 500


def format_sse(
    data: Any,
    event: str | None = None,
    event_id: str | None = None,
    retry: int | None = None,
) -> str:
    """Encode one server-sent event."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    if event_id:
        lines.append(f"id: {event_id}")
    if retry is not None:
        lines.append(f"retry: {retry}")
    payload = data if isinstance(data, str) else json.dumps(data, default=str)
    lines.extend(f"data: {line}" for line in payload.splitlines() or [""])
    return "\n".join(lines) + "\n\n"


def serialize_record(record: NotificationRecord) -> dict[str, Any]:
    return NotificationResponse.model_validate(record).model_dump(mode="json")


def notification_event(record: NotificationRecord) -> str:
    return format_sse(serialize_record(record), event="notification", event_id=str(record.id))


def ping_event() -> str:
    return format_sse({"time": int(time.time())}, event="ping")


class _Cursor:
    """Rescans a trailing window of ``created_at`` and remembers the ids sent.

    ``created_at`` is stamped when a record is built but the row only becomes
    visible at commit, so a record can appear after one with a newer stamp.
    Each poll reads from ``high - lookback`` and drops ids already sent.
    """

    def __init__(self, start: datetime, lookback: timedelta) -> None:
        self.high = start
        self.lookback = lookback
        self.seen: dict[UUID, datetime] = {}

    @property
    def scan_from(self) -> datetime:
        return self.high - self.lookback

    def mark(self, record: NotificationRecord) -> None:
        self.seen[record.id] = record.created_at

    def accept(self, record: NotificationRecord) -> bool:
        if record.id in self.seen:
            return False
        self.mark(record)
        if record.created_at > self.high:
            self.high = record.created_at
        return True

    def prune(self) -> None:
        floor = self.scan_from
        self.seen = {record_id: at for record_id, at in self.seen.items() if at >= floor}


async def notification_event_stream(
    user_id: UUID,
    session_factory: Callable[[], Session],
    last_event_id: str | None = None,
    keepalive_seconds: float = 30,
    poll_seconds: float = 2.0,
    lookback_seconds: float = 300,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    max_polls: int | None = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for ``user_id`` until the client disconnects.

    Args:
        user_id: Stream owner
        session_factory: Creates a short-lived session per poll
        last_event_id: ``Last-Event-ID`` sent by a reconnecting client;
            unread records after it are replayed first
        keepalive_seconds: Interval between ``ping`` events
        poll_seconds: Interval between inbox polls
        lookback_seconds: How far behind the newest record sent each poll
            rescans for records committed late
        is_disconnected: Awaitable check for client disconnect
        max_polls: Stop after this many polls (None for no limit)
    """
    inbox = get_inbox_service()
    start = utcnow()
    cursor = _Cursor(start, timedelta(seconds=lookback_seconds))

    # Records committed before the connection belong to the initial load
    with session_factory() as session:
        for record in inbox.sync_since(session, user_id, cursor.scan_from, SCAN_LIMIT):
            if record.created_at <= start:
                cursor.mark(record)

    yield format_sse({"time": int(time.time())}, event="ping", retry=RECONNECT_HINT_MS)

    if last_event_id:
        try:
            anchor = UUID(last_event_id)
        except ValueError:
            anchor = None
        if anchor is not None:
            with session_factory() as session:
                replay = inbox.unread_after(session, user_id, anchor)
            for record in replay:
                cursor.mark(record)
                yield notification_event(record)
            logger.debug(
                "Replayed unread notifications",
                extra={"user_id": str(user_id), "count": len(replay)},
            )

    last_ping = time.monotonic()
    polls = 0
    while max_polls is None or polls < max_polls:
        if is_disconnected is not None and await is_disconnected():
            logger.debug("Stream client disconnected", extra={"user_id": str(user_id)})
            break

        with session_factory() as session:
            records = inbox.sync_since(session, user_id, cursor.scan_from, SCAN_LIMIT)
        for record in records:
            if cursor.accept(record):
                yield notification_event(record)
        cursor.prune()
        polls += 1

        if time.monotonic() - last_ping >= keepalive_seconds:
            yield ping_event()
            last_ping = time.monotonic()

        await asyncio.sleep(poll_seconds)
