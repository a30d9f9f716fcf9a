"""
Database models for LurkingPods.

This module contains the status/language enumerations and the SQLAlchemy
models for every persisted entity.
"""

import uuid
from datetime import timedelta
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from .utils.dates import utcnow

Base = declarative_base()

PODCAST_LIFETIME = timedelta(days=7)
TRIAL_LENGTH = timedelta(days=2)
DEFAULT_MAX_RETRIES = 3


class Language(str, Enum):
    """Supported content languages."""
    EN = "en"
    TR = "tr"


class JobStatus(str, Enum):
    """Enumeration of content generation job statuses."""
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    """User-facing subscription status."""
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SubscriptionType(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ThemePreference(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class NotificationType(str, Enum):
    DAILY_CONTENT = "daily_content"
    SUBSCRIPTION_REMINDER = "subscription_reminder"
    TRIAL_EXPIRY = "trial_expiry"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class Category(Base):
    """Content category with English and Turkish labels."""
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(50), nullable=False, unique=True)
    display_name_en = Column(String(100), nullable=False)
    display_name_tr = Column(String(100), nullable=False)
    description_en = Column(Text, nullable=False, default="")
    description_tr = Column(Text, nullable=False, default="")
    icon_url = Column(String(500), nullable=False, default="")
    color_hex = Column(String(7), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class User(Base):
    """Registered app user."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    trial_start_date = Column(DateTime, nullable=False)
    trial_end_date = Column(DateTime, nullable=False)
    subscription_status = Column(String(20), nullable=False, default=SubscriptionStatus.TRIAL.value)
    subscription_type = Column(String(20))
    subscription_end_date = Column(DateTime)
    language_preference = Column(String(2), nullable=False, default=Language.EN.value)
    notification_enabled = Column(Boolean, nullable=False, default=True)
    notification_time = Column(String(5), nullable=False, default="00:05")
    favorite_categories = Column(JSON, nullable=False, default=list)
    theme_preference = Column(String(10), nullable=False, default=ThemePreference.SYSTEM.value)
    device_token = Column(String(500))
    device_platform = Column(String(10))


class Subscription(Base):
    """Paid subscription purchased through an app store."""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    renewal_date = Column(DateTime, nullable=False)
    payment_method = Column(String(20), nullable=False)
    transaction_id = Column(String(200), nullable=False, unique=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    cancelled_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_subscriptions_amount_positive"),
    )


class Podcast(Base):
    """A generated two-speaker episode, kept for seven days."""
    __tablename__ = "podcasts"

    id = Column(String(36), primary_key=True, default=new_id)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False, index=True)
    language = Column(String(2), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    script_content = Column(Text, nullable=False)
    audio_file_url = Column(String(500), nullable=False)
    audio_duration = Column(Integer, nullable=False)
    speaker_1_voice_id = Column(String(100), nullable=False)
    speaker_2_voice_id = Column(String(100), nullable=False)
    generation_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    quality_score = Column(Float, nullable=False)
    play_count = Column(Integer, nullable=False, default=0)
    is_featured = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("play_count >= 0", name="ck_podcasts_play_count"),
        CheckConstraint(
            "quality_score >= 0.0 AND quality_score <= 1.0", name="ck_podcasts_quality_score"
        ),
    )


class ContentGenerationJob(Base):
    """Database model for podcast content generation jobs."""
    __tablename__ = "content_generation_jobs"

    id = Column(String(36), primary_key=True, default=new_id)
    category_id = Column(String(36), nullable=False, index=True)
    language = Column(String(2), nullable=False)
    status = Column(String(20), nullable=False, default=JobStatus.PENDING.value, index=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime)
    error_message = Column(Text)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=DEFAULT_MAX_RETRIES)
    generated_podcast_id = Column(String(36))
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("retry_count >= 0 AND retry_count <= max_retries", name="ck_jobs_retry_count"),
        CheckConstraint("max_retries > 0", name="ck_jobs_max_retries"),
        CheckConstraint(
            "(status = 'completed' AND generated_podcast_id IS NOT NULL) "
            "OR (status <> 'completed' AND generated_podcast_id IS NULL)",
            name="ck_jobs_podcast_link",
        ),
        CheckConstraint(
            "(status IN ('completed', 'failed') AND completed_at IS NOT NULL) "
            "OR (status IN ('pending', 'generating') AND completed_at IS NULL)",
            name="ck_jobs_completed_at",
        ),
    )

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "category_id": self.category_id,
            "language": self.language,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "generated_podcast_id": self.generated_podcast_id,
        }


class Notification(Base):
    """Push notification queued for delivery to a device."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    title_en = Column(String(200), nullable=False)
    title_tr = Column(String(200), nullable=False)
    body_en = Column(Text, nullable=False)
    body_tr = Column(Text, nullable=False)
    scheduled_for = Column(DateTime, nullable=False, index=True)
    sent_at = Column(DateTime)
    delivery_status = Column(String(10), nullable=False, default=DeliveryStatus.PENDING.value)
    device_token = Column(String(500), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
