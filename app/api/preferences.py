"""Notification preference API endpoints."""

from fastapi import APIRouter, HTTPException, status

from app.api.deps import CurrentUser, DBSession
from app.models.preference import PreferenceResponse, PreferenceUpdate
from app.services.notification_types import DEFAULT_REGISTRY
from app.services.preferences import delete_preference, get_user_preferences, upsert_preference

router = APIRouter(prefix="/api/notification-preferences", tags=["Notification Preferences"])


@router.get("", response_model=list[PreferenceResponse])
def list_preferences_endpoint(session: DBSession, current_user: CurrentUser) -> list[PreferenceResponse]:
    """List the user's preference rows."""
    return [
        PreferenceResponse.model_validate(p)
        for p in get_user_preferences(session, current_user.id)
    ]


@router.put("", response_model=PreferenceResponse)
def update_preference_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    data: PreferenceUpdate,
) -> PreferenceResponse:
    """Set channel opt-ins globally or for one notification type."""
    if data.notification_type is not None and data.notification_type not in DEFAULT_REGISTRY:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown notification type: {data.notification_type}",
        )
    preference = upsert_preference(session, current_user.id, data)
    return PreferenceResponse.model_validate(preference)


@router.delete("/{notification_type}", status_code=status.HTTP_204_NO_CONTENT)
def delete_preference_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    notification_type: str,
) -> None:
    """Drop a type-specific override."""
    if not delete_preference(session, current_user.id, notification_type):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Preference not found",
        )
