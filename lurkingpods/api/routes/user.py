"""User preferences, devices and notifications."""

from fastapi import APIRouter, Depends

from ...errors import ValidationFailed
from ...models import User
from ...services import NotificationService, UserService
from ..auth import get_current_user
from ..dependencies import get_notification_service, get_user_service
from ..schemas import (
    DeviceTokenRequest,
    MessageResponse,
    NotificationResponse,
    NotificationsResponse,
    PreferencesResponse,
    PreferencesUpdateRequest,
    TestNotificationRequest,
)

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/preferences", response_model=PreferencesResponse)
async def get_preferences(user: User = Depends(get_current_user)):
    return PreferencesResponse.model_validate(user)


@router.put("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    request: PreferencesUpdateRequest,
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    updated = users.update_preferences(user.id, request.model_dump(exclude_none=True))
    return PreferencesResponse.model_validate(updated)


@router.post("/device-token", response_model=MessageResponse)
async def register_device_token(
    request: DeviceTokenRequest,
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    users.register_device(user.id, request.device_token, request.platform)
    return MessageResponse(message="Device token registered successfully")


@router.get("/notifications", response_model=NotificationsResponse)
async def list_notifications(
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return NotificationsResponse(
        notification_enabled=user.notification_enabled,
        notification_time=user.notification_time,
        language_preference=user.language_preference,
        notifications=[
            NotificationResponse.model_validate(notification)
            for notification in notifications.list_for_user(user.id)
        ],
    )


@router.post("/notifications/test", response_model=MessageResponse)
async def schedule_test_notification(
    request: TestNotificationRequest,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Queue a daily-content notification for the user's next notification time."""
    device_token = request.device_token or user.device_token
    if not device_token:
        raise ValidationFailed("device_token", "is required")
    notification = notifications.create_daily_content(user, device_token)
    return MessageResponse(message="Test notification scheduled", notification_id=notification.id)
