"""
Request and response models for the LurkingPods API.

Field rules that belong to the domain (email format, password length,
languages, colors) are enforced by the services so they surface as
``ValidationFailed`` (HTTP 400); the models here only describe shape.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    detail: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    request_id: Optional[str] = Field(None, description="Request tracking ID")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "ValidationFailed",
            "message": "Validation failed for 'email': must be a valid email address",
            "detail": {"field": "email", "rule": "must be a valid email address"},
            "request_id": "req_123456",
        }
    })


class HealthCheckResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Current timestamp")
    services: Dict[str, bool] = Field(..., description="Service dependencies status")


# Auth

class RegisterRequest(BaseModel):
    email: str
    password: str
    language_preference: str = Field("en", description="en or tr")

    model_config = ConfigDict(json_schema_extra={
        "example": {"email": "listener@example.com", "password": "s3cretpass", "language_preference": "en"}
    })


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    language_preference: str
    trial_start_date: datetime
    trial_end_date: datetime
    subscription_status: str


class UserDetailResponse(UserResponse):
    notification_enabled: bool
    notification_time: str
    favorite_categories: List[str]
    theme_preference: str


class SessionInfo(BaseModel):
    """The bearer token for subsequent requests."""
    access_token: str
    token_type: str = "bearer"
    user_id: str
    expires_at: datetime


class TrialInfo(BaseModel):
    is_trial: bool
    trial_start_date: datetime
    trial_end_date: datetime
    days_remaining: int
    is_expired: bool
    has_access: bool


class SubscriptionStatusResponse(BaseModel):
    status: str = Field(..., description="active or inactive")
    is_subscribed: bool
    subscription_type: Optional[str] = None
    end_date: Optional[datetime] = None
    is_expired: bool


class AuthResponse(BaseModel):
    user: UserResponse
    session: SessionInfo
    trial_info: TrialInfo


class MeResponse(BaseModel):
    user: UserDetailResponse
    trial_info: TrialInfo
    subscription: SubscriptionStatusResponse


# Content

class CategoryResponse(BaseModel):
    """Category localized to the requested language."""
    id: str
    name: str
    display_name: str
    description: str
    icon_url: str
    color_hex: str
    is_active: bool
    sort_order: int


class CategoryCreateRequest(BaseModel):
    name: str
    display_name_en: str
    display_name_tr: str
    description_en: str = ""
    description_tr: str = ""
    icon_url: str = ""
    color_hex: str
    sort_order: int = 0

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "technology",
            "display_name_en": "Technology",
            "display_name_tr": "Teknoloji",
            "description_en": "Gadgets, software and the people behind them",
            "description_tr": "Cihazlar, yazılımlar ve arkalarındaki insanlar",
            "icon_url": "https://cdn.example.com/icons/technology.png",
            "color_hex": "#3366FF",
            "sort_order": 1,
        }
    })


class CategoryDetailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name_en: str
    display_name_tr: str
    description_en: str
    description_tr: str
    icon_url: str
    color_hex: str
    is_active: bool
    sort_order: int
    created_at: datetime


class PodcastSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    audio_file_url: str
    audio_duration: int
    category_id: str
    language: str
    created_at: datetime
    expires_at: datetime
    play_count: int
    is_featured: bool


class PodcastDetail(PodcastSummary):
    script_content: str
    speaker_1_voice_id: str
    speaker_2_voice_id: str


class DailyMixResponse(BaseModel):
    podcasts: List[PodcastSummary]
    next_update: datetime
    total_count: int


class CategoryPodcastsResponse(BaseModel):
    category_id: str
    podcasts: List[PodcastSummary]
    total_count: int


class PlayResponse(BaseModel):
    id: str
    play_count: int


# Subscription

class VerifyReceiptRequest(BaseModel):
    platform: str = Field(..., description="ios or android")
    receipt_data: str = Field(..., description="Base64-encoded store receipt")


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subscription_id: str = Field(..., validation_alias="id")
    subscription_type: str
    status: str
    start_date: datetime
    end_date: datetime
    amount: float
    currency: str


class CancelSubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subscription_id: str = Field(..., validation_alias="id")
    status: str
    cancelled_at: Optional[datetime] = None


# User

class PreferencesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    language_preference: str
    notification_enabled: bool
    notification_time: str
    favorite_categories: List[str]
    theme_preference: str


class PreferencesUpdateRequest(BaseModel):
    language_preference: Optional[str] = None
    notification_enabled: Optional[bool] = None
    notification_time: Optional[str] = None
    favorite_categories: Optional[List[str]] = None
    theme_preference: Optional[str] = None


class DeviceTokenRequest(BaseModel):
    device_token: str
    platform: str = Field(..., description="ios or android")


class TestNotificationRequest(BaseModel):
    device_token: Optional[str] = Field(None, description="Defaults to the registered device")


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    title_en: str
    title_tr: str
    body_en: str
    body_tr: str
    scheduled_for: datetime
    sent_at: Optional[datetime] = None
    delivery_status: str


class NotificationsResponse(BaseModel):
    notification_enabled: bool
    notification_time: str
    language_preference: str
    notifications: List[NotificationResponse]


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    notification_id: Optional[str] = None


# Admin

class GenerateContentRequest(BaseModel):
    category_id: str
    language: str = Field(..., description="en or tr")
    max_retries: int = Field(3, description="Attempts allowed before the job gives up")


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    category_id: str
    language: str
    status: str
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int
    max_retries: int
    generated_podcast_id: Optional[str] = None


class GenerationResultResponse(BaseModel):
    job_id: str
    status: str
    podcast_id: Optional[str] = None
    message: str


class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    total_count: int
    limit: int
    offset: int


class DeleteExpiredResponse(BaseModel):
    deleted_count: int
    message: str


class StatsResponse(BaseModel):
    total_podcasts: int
    active_categories: int
    pending_jobs: int
    generating_jobs: int
    failed_jobs: int
    completed_jobs: int
    last_generation: Optional[datetime] = None


class FeaturedRequest(BaseModel):
    is_featured: bool
