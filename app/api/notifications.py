"""In-app notification API endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Header, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from app.api.deps import CurrentUser, DBSession, SessionFactory, StreamUser
from app.config import get_settings
from app.models.notification import (
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from app.services.errors import NotFoundError
from app.services.inbox import get_inbox_service
from app.services.stream import notification_event_stream
from app.utils.datetime import ensure_utc_naive

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
def list_notifications_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    unread: bool = Query(default=False, description="Only unread notifications"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> NotificationListResponse:
    """List notifications for the authenticated user, newest first."""
    inbox = get_inbox_service()
    records, total = inbox.list_notifications(session, current_user.id, unread, limit, offset)
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(r) for r in records],
        total=total,
        unread=inbox.unread_count(session, current_user.id),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count_endpoint(session: DBSession, current_user: CurrentUser) -> UnreadCountResponse:
    """Get the number of unread notifications."""
    return UnreadCountResponse(count=get_inbox_service().unread_count(session, current_user.id))


@router.get("/sync", response_model=NotificationListResponse)
def sync_notifications_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    since: datetime | None = Query(default=None, description="Return records created after this time"),
    limit: int = Query(default=100, ge=1, le=500),
) -> NotificationListResponse:
    """Get notifications created after ``since``, oldest first."""
    inbox = get_inbox_service()
    records = inbox.sync_since(
        session,
        current_user.id,
        ensure_utc_naive(since) if since else None,
        limit,
    )
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(r) for r in records],
        total=len(records),
        unread=inbox.unread_count(session, current_user.id),
    )


@router.get("/stream")
async def stream_notifications_endpoint(
    request: Request,
    current_user: StreamUser,
    session_factory: SessionFactory,
    last_event_id: str | None = Header(default=None, alias="Last-Event-ID"),
) -> StreamingResponse:
    """Server-sent events feed of new notifications."""
    settings = get_settings()
    events = notification_event_stream(
        user_id=current_user.id,
        session_factory=session_factory,
        last_event_id=last_event_id,
        keepalive_seconds=settings.STREAM_KEEPALIVE_SECONDS,
        poll_seconds=settings.STREAM_POLL_SECONDS,
        lookback_seconds=settings.STREAM_LOOKBACK_SECONDS,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/read-all", response_model=MarkReadResponse)
@router.patch("/read-all", response_model=MarkReadResponse)
def mark_all_read_endpoint(session: DBSession, current_user: CurrentUser) -> MarkReadResponse:
    """Mark every unread notification read."""
    updated = get_inbox_service().mark_all_as_read(session, current_user.id)
    return MarkReadResponse(success=True, updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    notification_id: UUID,
) -> NotificationResponse:
    """Mark one notification read. Repeated calls keep the first ``read_at``."""
    try:
        record = get_inbox_service().mark_as_read(session, current_user.id, notification_id)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return NotificationResponse.model_validate(record)
