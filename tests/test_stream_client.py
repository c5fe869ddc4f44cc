"""Tests for the notification stream client."""

import asyncio
import json
from unittest.mock import Mock, patch

import httpx
import pytest

from app.client.stream_client import (
    NEW_NOTIFICATION,
    NOTIFICATIONS_UPDATED,
    ConnectionState,
    NotificationStreamClient,
    iter_sse,
    should_toast,
)


def notification(id: str, created_at: str = "2026-10-19T08:00:00", **extra) -> dict:
    return {"id": id, "type": "system.alert", "data": {}, "read_at": None, "created_at": created_at, **extra}


def sse_body(*items: dict) -> bytes:
    frames = ['event: ping\ndata: {"time": 0}\n\n']
    for item in items:
        frames.append(f"event: notification\nid: {item['id']}\ndata: {json.dumps(item)}\n\n")
    return "".join(frames).encode()


def make_client(handler, **kwargs) -> NotificationStreamClient:
    http = httpx.AsyncClient(base_url="http://testserver", transport=httpx.MockTransport(handler))
    kwargs.setdefault("reconnect_delay", 0)
    return NotificationStreamClient("http://testserver", http_client=http, **kwargs)


def unavailable(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503)


# ============================================================================
# SSE Parsing Tests
# ============================================================================

class TestIterSse:

    @pytest.mark.asyncio
    async def test_parses_events(self):
        body = b': comment\nevent: notification\nid: 7\ndata: {"a":\ndata: 1}\n\nretry: 3000\ndata: tail\n'
        response = httpx.Response(200, content=body)

        events = [event async for event in iter_sse(response)]

        assert events[0].event == "notification"
        assert events[0].id == "7"
        assert events[0].data == '{"a":\n1}'
        assert events[1].event == "message"
        assert events[1].data == "tail"


class TestShouldToast:

    def test_refund_type_always_toasts(self):
        assert should_toast({"type": "refund_status_changed"})

    def test_important_flag(self):
        assert should_toast({"type": "system.alert", "data": {"important": True}})
        assert should_toast({"type": "system.alert", "important": True})
        assert not should_toast({"type": "system.alert", "data": {}})


# ============================================================================
# Local State Tests
# ============================================================================

class TestLocalState:
    """Tests for the client's local notification list."""

    def test_new_notification_is_prepended_once(self):
        client = make_client(unavailable)
        listener = Mock()
        client.subscribe(NEW_NOTIFICATION, listener)

        assert client.handle_new_notification(notification("a")) is True
        assert client.handle_new_notification(notification("b")) is True
        assert client.handle_new_notification(notification("a")) is False

        assert [n["id"] for n in client.get_notifications()] == ["b", "a"]
        assert client.get_unread_count() == 2
        assert listener.call_count == 2

    def test_toast_handler(self):
        toast = Mock()
        client = make_client(unavailable, toast_handler=toast)

        client.handle_new_notification(notification("a"))
        client.handle_new_notification(notification("b", type="refund_status_changed"))

        toast.assert_called_once()
        assert toast.call_args.args[0]["id"] == "b"

    def test_toast_errors_do_not_propagate(self):
        client = make_client(unavailable, toast_handler=Mock(side_effect=RuntimeError("toast ui bug")))

        assert client.handle_new_notification(notification("a", important=True)) is True
        assert client.get_unread_count() == 1

    def test_malformed_payload_is_ignored(self):
        client = make_client(unavailable)

        assert client.handle_new_notification(["not", "a", "dict"]) is False
        assert client.get_notifications() == []

    def test_listener_errors_do_not_propagate(self):
        client = make_client(unavailable)
        client.subscribe(NEW_NOTIFICATION, Mock(side_effect=RuntimeError("listener bug")))
        other = Mock()
        client.subscribe(NEW_NOTIFICATION, other)

        client.handle_new_notification(notification("a"))

        other.assert_called_once()

    def test_unsubscribe(self):
        client = make_client(unavailable)
        listener = Mock()
        client.subscribe(NOTIFICATIONS_UPDATED, listener)
        client.unsubscribe(NOTIFICATIONS_UPDATED, listener)

        client.clear_notifications()

        listener.assert_not_called()
        assert client.get_notifications() == []


# ============================================================================
# Read State Tests
# ============================================================================

class TestReadState:
    """Optimistic read-state updates."""

    @pytest.mark.asyncio
    async def test_mark_as_read(self):
        paths = []

        def handler(request):
            paths.append((request.method, request.url.path))
            return httpx.Response(200, json={})

        client = make_client(handler)
        client.handle_new_notification(notification("a"))

        await client.mark_as_read("a")

        assert client.get_unread_count() == 0
        assert client.get_unread_notifications() == []
        assert paths == [("POST", "/api/notifications/a/read")]

    @pytest.mark.asyncio
    async def test_local_change_kept_when_server_fails(self):
        client = make_client(lambda request: httpx.Response(500))
        client.handle_new_notification(notification("a"))

        with pytest.raises(httpx.HTTPStatusError):
            await client.mark_as_read("a")

        assert client.get_unread_count() == 0
        assert client.get_notifications()[0]["read_at"] is not None

    @pytest.mark.asyncio
    async def test_mark_all_as_read(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json={"success": True, "updated": 2})

        client = make_client(handler)
        client.handle_new_notification(notification("a"))
        client.handle_new_notification(notification("b"))

        await client.mark_all_as_read()

        assert client.get_unread_count() == 0
        assert paths == ["/api/notifications/read-all"]


# ============================================================================
# Connection Tests
# ============================================================================

class TestConnection:
    """Stream connection, reconnection and polling fallback."""

    @pytest.mark.asyncio
    async def test_falls_back_to_polling(self):
        """After max attempts the client stops reconnecting and polls."""
        attempts = []

        def handler(request):
            attempts.append(request.url.path)
            return httpx.Response(503)

        client = make_client(handler, max_reconnect_attempts=2, poll_interval=3600)

        await client._stream_loop()

        assert attempts == ["/api/notifications/stream"] * 3
        assert client.state == ConnectionState.DISCONNECTED
        assert client.is_polling
        await client.cleanup()
        assert not client.is_polling

    @pytest.mark.asyncio
    async def test_stream_delivers_and_resumes_with_last_event_id(self):
        requests = []

        def handler(request):
            requests.append(request)
            if len(requests) == 1:
                return httpx.Response(
                    200,
                    headers={"content-type": "text/event-stream"},
                    content=sse_body(notification("n1"), notification("n2")),
                )
            return httpx.Response(503)

        client = make_client(handler, max_reconnect_attempts=1, poll_interval=3600)

        await client._stream_loop()

        assert [n["id"] for n in client.get_notifications()] == ["n2", "n1"]
        assert client.last_event_id == "n2"
        assert "last-event-id" not in requests[0].headers
        assert requests[1].headers["last-event-id"] == "n2"
        await client.cleanup()

    @pytest.mark.asyncio
    async def test_initialize_loads_unread_and_cleanup_cancels(self):
        def handler(request):
            if request.url.path == "/api/notifications":
                assert request.url.params["unread"] == "true"
                assert request.url.params["limit"] == "50"
                return httpx.Response(200, json={
                    "data": [notification("a"), notification("b", read_at="2026-10-19T09:00:00")],
                    "total": 2,
                    "unread": 1,
                })
            return httpx.Response(503)

        client = make_client(handler, reconnect_delay=3600)

        await client.initialize()
        await asyncio.sleep(0)

        assert client.initialized
        assert len(client.get_notifications()) == 2
        assert client.get_unread_count() == 1

        await client.cleanup()
        assert client.initialized is False
        assert client._stream_task is None

    @pytest.mark.asyncio
    async def test_sync_requests_newer_records(self):
        seen_params = []

        def handler(request):
            seen_params.append(dict(request.url.params))
            return httpx.Response(200, json={
                "data": [notification("new", created_at="2026-10-19T09:00:00")],
                "total": 1,
                "unread": 1,
            })

        client = make_client(handler)
        client.handle_new_notification(notification("old", created_at="2026-10-19T08:00:00"))

        added = await client.sync_notifications()

        assert added == 1
        assert seen_params == [{"since": "2026-10-19T07:55:00"}]
        assert client.get_notifications()[0]["id"] == "new"

    @pytest.mark.asyncio
    async def test_sync_errors_are_swallowed(self):
        client = make_client(lambda request: httpx.Response(500))
        assert await client.sync_notifications() == 0

    @pytest.mark.asyncio
    async def test_sync_asks_for_a_lookback_window(self):
        """Records committed after a newer one are still requested."""
        seen_params = []

        def handler(request):
            seen_params.append(dict(request.url.params))
            return httpx.Response(200, json={
                "data": [notification("late", created_at="2026-10-19T08:59:59")],
                "total": 1,
                "unread": 1,
            })

        client = make_client(handler, sync_lookback=60)
        client.handle_new_notification(notification("newer", created_at="2026-10-19T09:00:00"))

        assert await client.sync_notifications() == 1
        assert seen_params == [{"since": "2026-10-19T08:59:00"}]
        assert {n["id"] for n in client.get_notifications()} == {"newer", "late"}

    @pytest.mark.asyncio
    async def test_sync_ignores_non_json_body(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))
        assert await client.sync_notifications() == 0


# ============================================================================
# Resilience Tests
# ============================================================================

class TestResilience:
    """Handler failures, backoff timing and reconciliation."""

    @pytest.mark.asyncio
    async def test_toast_failure_does_not_kill_stream(self):
        requests = []
        toast = Mock(side_effect=RuntimeError("toast ui bug"))

        def handler(request):
            requests.append(request)
            if len(requests) == 1:
                return httpx.Response(
                    200,
                    headers={"content-type": "text/event-stream"},
                    content=sse_body(notification("n1", important=True)),
                )
            return httpx.Response(503)

        client = make_client(handler, max_reconnect_attempts=1, poll_interval=3600, toast_handler=toast)

        await client._stream_loop()

        toast.assert_called_once()
        assert [n["id"] for n in client.get_notifications()] == ["n1"]
        assert len(requests) == 2
        assert client.state == ConnectionState.DISCONNECTED
        assert client.is_polling
        await client.cleanup()

    @pytest.mark.asyncio
    async def test_unexpected_handler_error_reconnects(self):
        requests = []

        def handler(request):
            requests.append(request)
            if len(requests) == 1:
                return httpx.Response(
                    200,
                    headers={"content-type": "text/event-stream"},
                    content=sse_body(notification("n1")),
                )
            return httpx.Response(503)

        client = make_client(handler, max_reconnect_attempts=1, poll_interval=3600)
        client.handle_new_notification = Mock(side_effect=AttributeError("bad payload"))

        await client._stream_loop()

        assert len(requests) == 2
        assert client.state == ConnectionState.DISCONNECTED
        assert client.is_polling
        await client.cleanup()

    @pytest.mark.asyncio
    async def test_reconnect_delay_grows_linearly(self):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        client = make_client(unavailable, max_reconnect_attempts=3, reconnect_delay=2, poll_interval=3600)

        with patch("app.client.stream_client.asyncio.sleep", new=fake_sleep):
            await client._stream_loop()

        assert delays == [2, 4, 6]
        assert client.is_polling
        await client.cleanup()

    @pytest.mark.asyncio
    async def test_sync_loop_restarts_stopped_stream(self):
        sleeps = []

        async def one_tick(seconds):
            sleeps.append(seconds)
            if len(sleeps) > 1:
                raise asyncio.CancelledError

        def handler(request):
            return httpx.Response(200, json={"data": [notification("synced")], "total": 1, "unread": 1})

        client = make_client(handler, sync_interval=120)
        client._start_stream = Mock()

        with patch("app.client.stream_client.asyncio.sleep", new=one_tick):
            with pytest.raises(asyncio.CancelledError):
                await client._sync_loop()

        assert sleeps == [120, 120]
        client._start_stream.assert_called_once()
        assert [n["id"] for n in client.get_notifications()] == ["synced"]

    @pytest.mark.asyncio
    async def test_sync_loop_leaves_connected_stream_alone(self):
        calls = []

        async def one_tick(seconds):
            calls.append(seconds)
            if len(calls) > 1:
                raise asyncio.CancelledError

        client = make_client(lambda request: httpx.Response(200, json={"data": []}))
        client.state = ConnectionState.CONNECTED
        client._start_stream = Mock()

        with patch("app.client.stream_client.asyncio.sleep", new=one_tick):
            with pytest.raises(asyncio.CancelledError):
                await client._sync_loop()

        client._start_stream.assert_not_called()

    @pytest.mark.asyncio
    async def test_cleanup_cancels_pending_reconnect(self):
        client = make_client(unavailable, reconnect_delay=3600)
        client._start_stream()
        for _ in range(50):
            await asyncio.sleep(0)
            if client.reconnect_attempts:
                break
        task = client._stream_task

        assert client.reconnect_attempts == 1
        assert not task.done()

        await client.cleanup()

        assert task.cancelled()
        assert client.state == ConnectionState.DISCONNECTED
        assert client._stream_task is None
