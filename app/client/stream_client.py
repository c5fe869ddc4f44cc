"""Client side of the notification event stream.

``NotificationStreamClient`` keeps a server-sent events connection to
``/api/notifications/stream`` and maintains a local, newest-first list of
notifications with their read state.

Connection lifecycle::

    disconnected -> connecting -> connected
    error: -> disconnected, reconnect after reconnect_delay * attempt
    attempts exhausted: poll /sync every poll_interval

Independently, a reconciliation task calls /sync every ``sync_interval``
and restarts a stopped stream. Everything runs on one event loop;
``cleanup()`` cancels every task the client started.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import httpx

from app.utils.datetime import utcnow

logger = logging.getLogger(__name__)

NEW_NOTIFICATION = "notification:new"
NOTIFICATIONS_UPDATED = "notifications:updated"

# Notification types that always raise a toast
TOAST_TYPES = frozenset({"refund_status_changed"})


class ConnectionState(str, Enum):
    """Stream connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ServerSentEvent:
    event: str
    data: str
    id: str | None = None


async def iter_sse(response: httpx.Response) -> AsyncIterator[ServerSentEvent]:
    """Parse a ``text/event-stream`` response body into events."""
    event = "message"
    data: list[str] = []
    event_id: str | None = None

    async for line in response.aiter_lines():
        line = line.rstrip("\r")
        if not line:
            if data:
                yield ServerSentEvent(event=event, data="\n".join(data), id=event_id)
            event, data, event_id = "message", [], None
            continue
        if line.startswith(":"):
            continue

        field_name, _, value = line.partition(":")
        value = value.removeprefix(" ")
        if field_name == "event":
            event = value
        elif field_name == "data":
            data.append(value)
        elif field_name == "id":
            event_id = value

    if data:
        yield ServerSentEvent(event=event, data="\n".join(data), id=event_id)


def should_toast(notification: dict[str, Any]) -> bool:
    """Whether a notification is significant enough for a toast."""
    if notification.get("type") in TOAST_TYPES:
        return True
    if notification.get("important"):
        return True
    data = notification.get("data") or {}
    return bool(isinstance(data, dict) and data.get("important"))


class NotificationStreamClient:
    """Live notification feed with reconnection, polling fallback and read state."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 3.0,
        poll_interval: float = 30.0,
        sync_interval: float = 300.0,
        sync_lookback: float = 300.0,
        initial_limit: int = 50,
        toast_handler: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=30.0)

        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.poll_interval = poll_interval
        self.sync_interval = sync_interval
        self.sync_lookback = sync_lookback
        self.initial_limit = initial_limit
        self.toast_handler = toast_handler

        self.state = ConnectionState.DISCONNECTED
        self.notifications: list[dict[str, Any]] = []
        self.unread_count = 0
        self.reconnect_attempts = 0
        self.last_event_id: str | None = None
        self.initialized = False

        self._listeners: dict[str, list[Callable[[Any], None]]] = {}
        self._stream_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._sync_task: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception("Notification listener failed", extra={"event": event})

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load the initial list and start the stream and reconciliation tasks."""
        if self.initialized:
            return
        self.initialized = True
        self._start_stream()
        await self.load_notifications()
        self._sync_task = asyncio.create_task(self._sync_loop())

    async def cleanup(self) -> None:
        """Cancel every task and close the connection."""
        tasks = [t for t in (self._stream_task, self._poll_task, self._sync_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._stream_task = self._poll_task = self._sync_task = None
        self.state = ConnectionState.DISCONNECTED
        self.initialized = False
        if self._owns_client:
            await self.http.aclose()

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _start_stream(self) -> None:
        if self._stream_task is None or self._stream_task.done():
            self._stream_task = asyncio.create_task(self._stream_loop())

    # -------------------------------------------------------------------------
    # Stream
    # -------------------------------------------------------------------------

    async def _stream_loop(self) -> None:
        while True:
            try:
                await self._connect_once()
            except asyncio.CancelledError:
                raise
            except (httpx.HTTPError, json.JSONDecodeError) as e:
                logger.warning("Notification stream error", extra={"error": str(e)})
            except Exception:
                logger.exception("Notification stream handler failed")
            finally:
                self.state = ConnectionState.DISCONNECTED

            if self.reconnect_attempts >= self.max_reconnect_attempts:
                logger.error("Max reconnection attempts reached, falling back to polling")
                self.start_polling()
                return

            self.reconnect_attempts += 1
            delay = self.reconnect_delay * self.reconnect_attempts
            logger.info(
                f"Reconnecting ({self.reconnect_attempts}/{self.max_reconnect_attempts})",
                extra={"delay_seconds": delay},
            )
            await asyncio.sleep(delay)

    async def _connect_once(self) -> None:
        self.state = ConnectionState.CONNECTING
        headers = {"Accept": "text/event-stream"}
        if self.last_event_id:
            headers["Last-Event-ID"] = self.last_event_id

        async with self.http.stream(
            "GET",
            "/api/notifications/stream",
            headers=headers,
            timeout=httpx.Timeout(30.0, read=None),
        ) as response:
            response.raise_for_status()
            self.state = ConnectionState.CONNECTED
            self.reconnect_attempts = 0
            self.stop_polling()
            logger.info("Notification stream connected")

            async for event in iter_sse(response):
                if event.event in ("notification", "message"):
                    if event.id:
                        self.last_event_id = event.id
                    self.handle_new_notification(json.loads(event.data))

    # -------------------------------------------------------------------------
    # Polling and reconciliation
    # -------------------------------------------------------------------------

    def start_polling(self) -> None:
        if not self.is_polling:
            self._poll_task = asyncio.create_task(self._poll_loop())

    def stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self._safe_sync()

    async def _sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sync_interval)
            if not self.is_connected:
                self._start_stream()
            await self._safe_sync()

    async def _safe_sync(self) -> None:
        try:
            await self.sync_notifications()
        except Exception:
            logger.exception("Notification sync failed")

    async def load_notifications(self) -> None:
        """Replace the local list with the server's unread notifications."""
        try:
            response = await self.http.get(
                "/api/notifications",
                params={"limit": self.initial_limit, "unread": "true"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Failed to load notifications", extra={"error": str(e)})
            return

        self.notifications = list(response.json().get("data", []))
        self._recount_unread()
        self._emit(NOTIFICATIONS_UPDATED, self.notifications)

    async def sync_notifications(self) -> int:
        """Fetch records the local list is missing.

        The request starts ``sync_lookback`` seconds before the newest local
        record, so records committed after a newer one still arrive; ids
        already present are skipped.

        Returns:
            Number of notifications added
        """
        params = {}
        since = self._sync_since()
        if since is not None:
            params["since"] = since.isoformat()
        try:
            response = await self.http.get("/api/notifications/sync", params=params)
            response.raise_for_status()
            records = response.json().get("data", [])
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to sync notifications", extra={"error": str(e)})
            return 0

        added = 0
        for notification in records:
            if self.handle_new_notification(notification):
                added += 1
        return added

    def _sync_since(self) -> datetime | None:
        stamps = []
        for notification in self.notifications:
            try:
                stamp = datetime.fromisoformat(notification["created_at"])
            except (KeyError, TypeError, ValueError):
                continue
            if stamp.tzinfo is not None:
                stamp = stamp.astimezone(timezone.utc).replace(tzinfo=None)
            stamps.append(stamp)
        if not stamps:
            return None
        return max(stamps) - timedelta(seconds=self.sync_lookback)

    # -------------------------------------------------------------------------
    # Local state
    # -------------------------------------------------------------------------

    def handle_new_notification(self, notification: dict[str, Any]) -> bool:
        """Insert a notification unless its id is already present.

        Returns:
            True if it was added
        """
        if not isinstance(notification, dict):
            logger.warning("Ignoring malformed notification", extra={"payload": repr(notification)[:200]})
            return False
        if any(n.get("id") == notification.get("id") for n in self.notifications):
            return False

        self.notifications.insert(0, notification)
        if not notification.get("read_at"):
            self.unread_count += 1

        self._emit(NEW_NOTIFICATION, notification)
        self._emit(NOTIFICATIONS_UPDATED, self.notifications)

        if self.toast_handler is not None and should_toast(notification):
            try:
                self.toast_handler(notification)
            except Exception:
                logger.exception("Toast handler failed", extra={"notification_id": notification.get("id")})
        return True

    async def mark_as_read(self, notification_id: str) -> None:
        """Mark read locally, then on the server.

        The local change is kept if the server call fails; the error is
        re-raised to the caller.
        """
        notification = next((n for n in self.notifications if n.get("id") == notification_id), None)
        if notification is not None and not notification.get("read_at"):
            notification["read_at"] = utcnow().isoformat()
            self.unread_count = max(0, self.unread_count - 1)
            self._emit(NOTIFICATIONS_UPDATED, self.notifications)

        try:
            response = await self.http.post(f"/api/notifications/{notification_id}/read")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "Failed to mark notification as read",
                extra={"notification_id": notification_id, "error": str(e)},
            )
            raise

    async def mark_all_as_read(self) -> None:
        """Mark everything read locally, then on the server."""
        now = utcnow().isoformat()
        for notification in self.notifications:
            if not notification.get("read_at"):
                notification["read_at"] = now
        self.unread_count = 0
        self._emit(NOTIFICATIONS_UPDATED, self.notifications)

        try:
            response = await self.http.post("/api/notifications/read-all")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to mark all notifications as read", extra={"error": str(e)})
            raise

    def get_notifications(self) -> list[dict[str, Any]]:
        return self.notifications

    def get_unread_notifications(self) -> list[dict[str, Any]]:
        return [n for n in self.notifications if not n.get("read_at")]

    def get_unread_count(self) -> int:
        return self.unread_count

    def clear_notifications(self) -> None:
        self.notifications = []
        self.unread_count = 0
        self._emit(NOTIFICATIONS_UPDATED, self.notifications)

    def _recount_unread(self) -> None:
        self.unread_count = sum(1 for n in self.notifications if not n.get("read_at"))
