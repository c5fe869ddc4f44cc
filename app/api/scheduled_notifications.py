"""Scheduled notification API endpoints."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from app.api.deps import AdminUser, CurrentUser, DBSession
from app.models.scheduled_notification import (
    ScheduledNotificationCreate,
    ScheduledNotificationListResponse,
    ScheduledNotificationResponse,
    ScheduledStatsResponse,
    ScheduledStatus,
)
from app.services.errors import InvalidScheduleError, NotFoundError, UnknownNotificationTypeError
from app.services.scheduler import get_scheduled_notification_service

router = APIRouter(prefix="/api/scheduled-notifications", tags=["Scheduled Notifications"])


@router.post("", response_model=ScheduledNotificationResponse, status_code=status.HTTP_201_CREATED)
def create_scheduled_notification_endpoint(
    session: DBSession,
    current_user: AdminUser,
    data: ScheduledNotificationCreate,
) -> ScheduledNotificationResponse:
    """Schedule a notification."""
    try:
        notification = get_scheduled_notification_service().schedule(
            session,
            name=data.name,
            notification_type=data.type,
            channels=data.channels,
            recipients=data.recipients,
            data=data.data,
            schedule=data.schedule,
            created_by=current_user.id,
        )
    except (InvalidScheduleError, UnknownNotificationTypeError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    return ScheduledNotificationResponse.model_validate(notification)


@router.get("", response_model=ScheduledNotificationListResponse)
def list_scheduled_notifications_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    status_filter: ScheduledStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> ScheduledNotificationListResponse:
    """List scheduled notifications. Non-admins only see their own."""
    created_by = None if current_user.is_admin else current_user.id
    items, total = get_scheduled_notification_service().list_notifications(
        session, status_filter, created_by, limit, offset
    )
    return ScheduledNotificationListResponse(
        scheduled_notifications=[ScheduledNotificationResponse.model_validate(i) for i in items],
        total=total,
    )


@router.get("/upcoming", response_model=list[ScheduledNotificationResponse])
def upcoming_scheduled_notifications_endpoint(
    session: DBSession,
    current_user: AdminUser,
    limit: int = Query(default=10, ge=1, le=100),
) -> list[ScheduledNotificationResponse]:
    """Pending notifications in run order."""
    items = get_scheduled_notification_service().get_upcoming(session, limit)
    return [ScheduledNotificationResponse.model_validate(i) for i in items]


@router.get("/stats", response_model=ScheduledStatsResponse)
def scheduled_stats_endpoint(session: DBSession, current_user: AdminUser) -> ScheduledStatsResponse:
    """Counts of scheduled notifications per status."""
    return ScheduledStatsResponse(**get_scheduled_notification_service().get_stats(session))


@router.post("/process")
def process_scheduled_endpoint(
    session: DBSession,
    current_user: AdminUser,
    limit: int = Query(default=10, ge=0, le=500),
) -> dict[str, Any]:
    """Process due scheduled notifications now."""
    result = get_scheduled_notification_service().process_due(session, limit)
    return result.to_dict()


@router.get("/{scheduled_id}", response_model=ScheduledNotificationResponse)
def get_scheduled_notification_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    scheduled_id: UUID,
) -> ScheduledNotificationResponse:
    """Get a scheduled notification."""
    owner = None if current_user.is_admin else current_user.id
    try:
        notification = get_scheduled_notification_service().get(session, scheduled_id, owner)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Scheduled notification not found",
        )
    return ScheduledNotificationResponse.model_validate(notification)


@router.post("/{scheduled_id}/cancel", response_model=ScheduledNotificationResponse)
def cancel_scheduled_notification_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    scheduled_id: UUID,
) -> ScheduledNotificationResponse:
    """Cancel a pending scheduled notification."""
    service = get_scheduled_notification_service()
    owner = None if current_user.is_admin else current_user.id
    try:
        cancelled = service.cancel(session, scheduled_id, by_user=owner)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Scheduled notification not found",
        )
    if not cancelled:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only pending notifications can be cancelled",
        )
    return ScheduledNotificationResponse.model_validate(service.get(session, scheduled_id))
