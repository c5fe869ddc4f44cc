"""Tests for the HTTP API.

Tests cover:
- Inbox endpoints (list, unread count, sync, mark read)
- Preference endpoints
- Scheduled notification endpoints and admin checks
- Bearer token resolution
"""

from datetime import datetime, timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session

from app.api import deps
from app.api.deps import get_current_user, get_db_session, resolve_user
from app.main import app
from app.models.notification import NotificationRecord
from app.models.scheduled_notification import ScheduledNotification, ScheduledStatus

BASE = datetime(2026, 10, 19, 8, 0, 0)


@pytest.fixture
def client_for(db_session: Session):
    """Return a factory of TestClients authenticated as a given user."""

    def override_session():
        yield db_session

    def make(user) -> TestClient:
        app.dependency_overrides[get_db_session] = override_session
        app.dependency_overrides[get_current_user] = lambda: user
        return TestClient(app)

    yield make
    app.dependency_overrides.clear()


@pytest.fixture
def client(client_for, test_user) -> TestClient:
    return client_for(test_user)


def add_record(session: Session, user, minutes: int, read: bool = False, **data) -> NotificationRecord:
    record = NotificationRecord(
        user_id=user.id,
        type="system.alert",
        origin_key=f"test:{uuid4()}",
        data={"message": f"notification {minutes}", **data},
        created_at=BASE + timedelta(minutes=minutes),
        read_at=BASE if read else None,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


# ============================================================================
# Inbox Endpoint Tests
# ============================================================================

class TestInboxEndpoints:
    """Tests for /api/notifications."""

    def test_list_newest_first(self, client, db_session, test_user):
        add_record(db_session, test_user, 1)
        add_record(db_session, test_user, 2, read=True)
        newest = add_record(db_session, test_user, 3)

        response = client.get("/api/notifications")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["unread"] == 2
        assert body["data"][0]["id"] == str(newest.id)

    def test_list_unread_only(self, client, db_session, test_user):
        add_record(db_session, test_user, 1)
        add_record(db_session, test_user, 2, read=True)

        body = client.get("/api/notifications", params={"unread": "true"}).json()

        assert body["total"] == 1
        assert all(n["read_at"] is None for n in body["data"])

    def test_list_excludes_other_users(self, client, db_session, admin_user):
        add_record(db_session, admin_user, 1)

        body = client.get("/api/notifications").json()
        assert body["total"] == 0

    def test_unread_count(self, client, db_session, test_user):
        add_record(db_session, test_user, 1)
        add_record(db_session, test_user, 2)

        assert client.get("/api/notifications/unread-count").json() == {"count": 2}

    def test_sync_since(self, client, db_session, test_user):
        add_record(db_session, test_user, 1)
        second = add_record(db_session, test_user, 2)
        third = add_record(db_session, test_user, 3)

        body = client.get(
            "/api/notifications/sync",
            params={"since": (BASE + timedelta(minutes=1)).isoformat()},
        ).json()

        assert [n["id"] for n in body["data"]] == [str(second.id), str(third.id)]

    def test_sync_includes_channel_results(self, client, db_session, test_user):
        record = add_record(db_session, test_user, 1)
        record.channel_results = {"mail": {"channel": "mail", "success": False, "error": "bounced"}}
        db_session.add(record)
        db_session.commit()

        body = client.get("/api/notifications/sync").json()

        assert body["data"][0]["channel_results"]["mail"]["error"] == "bounced"

    def test_mark_read_is_idempotent(self, client, db_session, test_user):
        """A second mark-read keeps the first read_at."""
        record = add_record(db_session, test_user, 1)

        first = client.post(f"/api/notifications/{record.id}/read")
        second = client.patch(f"/api/notifications/{record.id}/read")

        assert first.status_code == 200
        assert first.json()["read_at"] is not None
        assert second.json()["read_at"] == first.json()["read_at"]

    def test_mark_read_other_users_record_404(self, client, db_session, admin_user):
        record = add_record(db_session, admin_user, 1)

        response = client.post(f"/api/notifications/{record.id}/read")
        assert response.status_code == 404

    def test_mark_read_unknown_404(self, client):
        assert client.post(f"/api/notifications/{uuid4()}/read").status_code == 404

    def test_mark_all_read(self, client, db_session, test_user):
        add_record(db_session, test_user, 1)
        add_record(db_session, test_user, 2)
        add_record(db_session, test_user, 3, read=True)

        response = client.post("/api/notifications/read-all")

        assert response.json() == {"success": True, "updated": 2}
        assert client.get("/api/notifications/unread-count").json() == {"count": 0}


# ============================================================================
# Preference Endpoint Tests
# ============================================================================

class TestPreferenceEndpoints:
    """Tests for /api/notification-preferences."""

    def test_upsert_and_list(self, client):
        payload = {"notification_type": "exam.reminder", "sms": False}

        first = client.put("/api/notification-preferences", json=payload)
        second = client.put("/api/notification-preferences", json={**payload, "mail": False})

        assert first.status_code == 200
        assert second.json()["mail"] is False
        prefs = client.get("/api/notification-preferences").json()
        assert len(prefs) == 1
        assert prefs[0]["sms"] is False

    def test_unknown_type_rejected(self, client):
        response = client.put("/api/notification-preferences", json={"notification_type": "nope"})
        assert response.status_code == 422

    def test_delete_override(self, client):
        client.put("/api/notification-preferences", json={"notification_type": "exam.reminder", "sms": False})

        assert client.delete("/api/notification-preferences/exam.reminder").status_code == 204
        assert client.delete("/api/notification-preferences/exam.reminder").status_code == 404


# ============================================================================
# Scheduled Notification Endpoint Tests
# ============================================================================

class TestScheduledEndpoints:
    """Tests for /api/scheduled-notifications."""

    def payload(self, user, **overrides):
        body = {
            "name": "Exam reminder",
            "type": "exam.reminder",
            "channels": ["database", "mail"],
            "recipients": [str(user.id)],
            "data": {"title": "Exam", "message": "Exam tomorrow"},
            "schedule": {"type": "once", "datetime": "2030-01-15T09:00:00"},
        }
        body.update(overrides)
        return body

    def test_admin_creates(self, client_for, admin_user, test_user):
        client = client_for(admin_user)

        response = client.post("/api/scheduled-notifications", json=self.payload(test_user))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["scheduled_at"].startswith("2030-01-15T09:00:00")
        assert body["created_by"] == str(admin_user.id)

    def test_non_admin_cannot_create(self, client, test_user):
        response = client.post("/api/scheduled-notifications", json=self.payload(test_user))
        assert response.status_code == 403

    def test_past_schedule_rejected(self, client_for, admin_user, test_user):
        client = client_for(admin_user)
        body = self.payload(test_user, schedule={"type": "once", "datetime": "2020-01-01T09:00:00"})

        assert client.post("/api/scheduled-notifications", json=body).status_code == 422

    def test_unknown_type_rejected(self, client_for, admin_user, test_user):
        client = client_for(admin_user)
        body = self.payload(test_user, type="homework.teleported")

        assert client.post("/api/scheduled-notifications", json=body).status_code == 422

    def test_cancel_flow(self, client_for, admin_user, test_user):
        client = client_for(admin_user)
        created = client.post("/api/scheduled-notifications", json=self.payload(test_user)).json()

        cancelled = client.post(f"/api/scheduled-notifications/{created['id']}/cancel")
        again = client.post(f"/api/scheduled-notifications/{created['id']}/cancel")

        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert again.status_code == 409

    def test_non_owner_sees_404(self, client_for, admin_user, test_user):
        created = client_for(admin_user).post(
            "/api/scheduled-notifications", json=self.payload(test_user),
        ).json()

        student = client_for(test_user)
        assert student.get(f"/api/scheduled-notifications/{created['id']}").status_code == 404
        assert student.post(f"/api/scheduled-notifications/{created['id']}/cancel").status_code == 404
        assert student.get("/api/scheduled-notifications").json()["total"] == 0

    def test_list_status_filter(self, client_for, db_session, admin_user):
        for status in (ScheduledStatus.PENDING, ScheduledStatus.FAILED):
            db_session.add(ScheduledNotification(
                name="n", type="system.alert", schedule={"type": "daily"},
                scheduled_at=BASE, status=status, created_by=admin_user.id,
            ))
        db_session.commit()

        body = client_for(admin_user).get("/api/scheduled-notifications", params={"status": "failed"}).json()

        assert body["total"] == 1
        assert body["scheduled_notifications"][0]["status"] == "failed"

    def test_stats(self, client_for, admin_user, test_user):
        client = client_for(admin_user)
        client.post("/api/scheduled-notifications", json=self.payload(test_user))

        stats = client.get("/api/scheduled-notifications/stats").json()

        assert stats["pending"] == 1
        assert stats["total"] == 1

    def test_process_sends_due_entries(self, client_for, db_session, admin_user, test_user):
        db_session.add(ScheduledNotification(
            name="Maintenance", type="system.alert", channels=["database"],
            recipients=[str(test_user.id)], data={"message": "Down at 22:00"},
            schedule={"type": "once", "datetime": "2026-01-01T00:00:00"},
            scheduled_at=BASE - timedelta(days=300), created_by=admin_user.id,
        ))
        db_session.commit()

        result = client_for(admin_user).post("/api/scheduled-notifications/process").json()

        assert result["status"] == "success"
        assert result["processed_count"] == 1
        inbox = client_for(test_user).get("/api/notifications").json()
        assert inbox["total"] == 1


# ============================================================================
# Authentication Tests
# ============================================================================

class TestTokenResolution:
    """Tests for resolve_user."""

    def test_valid_token(self, db_session, test_user):
        token = jwt.encode({"sub": str(test_user.id)}, "test-secret", algorithm="HS256")

        with patch.object(deps.settings, "JWT_SECRET", "test-secret"):
            user = resolve_user(db_session, token)

        assert user.id == test_user.id

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_invalid_token(self, db_session, token):
        with patch.object(deps.settings, "JWT_SECRET", "test-secret"):
            with pytest.raises(HTTPException) as exc:
                resolve_user(db_session, token)
        assert exc.value.status_code == 401

    def test_unknown_user(self, db_session):
        token = jwt.encode({"sub": str(uuid4())}, "test-secret", algorithm="HS256")

        with patch.object(deps.settings, "JWT_SECRET", "test-secret"):
            with pytest.raises(HTTPException) as exc:
                resolve_user(db_session, token)
        assert exc.value.status_code == 401

    def test_missing_token_is_401(self, db_session):
        def override_session():
            yield db_session

        app.dependency_overrides[get_db_session] = override_session
        try:
            response = TestClient(app).get("/api/notifications")
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 401
