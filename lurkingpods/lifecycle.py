"""
Entity lifecycle helpers.

Pure functions that compute the next state of an entity. Nothing here touches
the database: the orchestrator and the services persist what these return.
"""

from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .errors import InvalidStatusTransition
from .models import (
    DeliveryStatus,
    JobStatus,
    PODCAST_LIFETIME,
    SubscriptionStatus,
    SubscriptionType,
    TRIAL_LENGTH,
)
from .utils.dates import add_months, next_utc_midnight, utcnow

JOB_TRANSITIONS: Mapping[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.GENERATING}),
    JobStatus.GENERATING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset({JobStatus.PENDING}),
}

SUBSCRIPTION_PRICES = {
    SubscriptionType.MONTHLY: 9.99,
    SubscriptionType.YEARLY: 99.99,
}


# Content generation jobs

@dataclass(frozen=True)
class JobState:
    """Immutable snapshot of a content generation job."""
    id: str
    category_id: str
    language: str
    status: JobStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    generated_podcast_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Any) -> "JobState":
        values = {f.name: getattr(record, f.name) for f in fields(cls)}
        values["status"] = JobStatus(values["status"])
        return cls(**values)


def is_valid_transition(current: JobStatus, target: JobStatus) -> bool:
    return JobStatus(target) in JOB_TRANSITIONS[JobStatus(current)]


def ensure_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise ``InvalidStatusTransition`` unless ``current -> target`` is in the table."""
    if not is_valid_transition(current, target):
        raise InvalidStatusTransition(JobStatus(current).value, JobStatus(target).value)


def can_retry(job: JobState) -> bool:
    return job.status == JobStatus.FAILED and job.retry_count < job.max_retries


def mark_as_started(job: JobState, now: Optional[datetime] = None) -> JobState:
    return replace(job, status=JobStatus.GENERATING, started_at=now or utcnow())


def mark_as_completed(job: JobState, podcast_id: str, now: Optional[datetime] = None) -> JobState:
    return replace(
        job,
        status=JobStatus.COMPLETED,
        completed_at=now or utcnow(),
        generated_podcast_id=podcast_id,
    )


def mark_as_failed(job: JobState, error_message: str, now: Optional[datetime] = None) -> JobState:
    """Record a failure. ``retry_count`` counts every failed attempt, the first included."""
    return replace(
        job,
        status=JobStatus.FAILED,
        completed_at=now or utcnow(),
        error_message=error_message,
        retry_count=job.retry_count + 1,
    )


def reset_for_retry(job: JobState, now: Optional[datetime] = None) -> JobState:
    return replace(
        job,
        status=JobStatus.PENDING,
        started_at=now or utcnow(),
        completed_at=None,
        error_message=None,
    )


def changed_fields(before: JobState, after: JobState) -> Dict[str, Any]:
    """Fields that differ between two snapshots, as plain column values."""
    changes = {}
    for f in fields(JobState):
        old, new = getattr(before, f.name), getattr(after, f.name)
        if old != new:
            changes[f.name] = new.value if isinstance(new, JobStatus) else new
    return changes


# Podcasts

def podcast_expiry(created_at: datetime) -> datetime:
    return created_at + PODCAST_LIFETIME


def next_refresh_time(now: Optional[datetime] = None) -> datetime:
    """Daily content refreshes at 00:00 UTC."""
    return next_utc_midnight(now or utcnow())


# Users

def trial_dates(now: Optional[datetime] = None) -> Dict[str, datetime]:
    now = now or utcnow()
    return {"trial_start_date": now, "trial_end_date": now + TRIAL_LENGTH}


def is_trial_expired(user: Any, now: Optional[datetime] = None) -> bool:
    return (now or utcnow()) > user.trial_end_date


def has_active_subscription(user: Any, now: Optional[datetime] = None) -> bool:
    return (
        user.subscription_status == SubscriptionStatus.ACTIVE
        and user.subscription_end_date is not None
        and (now or utcnow()) < user.subscription_end_date
    )


def trial_status(user: Any, now: Optional[datetime] = None) -> Dict[str, bool]:
    now = now or utcnow()
    expired = is_trial_expired(user, now)
    return {
        "is_expired": expired,
        "has_access": not expired or has_active_subscription(user, now),
    }


def trial_days_remaining(user: Any, now: Optional[datetime] = None) -> int:
    remaining = user.trial_end_date - (now or utcnow())
    if remaining.total_seconds() <= 0:
        return 0
    # Round partial days up
    return -(-int(remaining.total_seconds()) // 86400)


# Subscriptions

def subscription_end_date(start: datetime, subscription_type: SubscriptionType) -> datetime:
    if SubscriptionType(subscription_type) == SubscriptionType.MONTHLY:
        return add_months(start, 1)
    return add_months(start, 12)


def subscription_price(subscription_type: SubscriptionType) -> float:
    return SUBSCRIPTION_PRICES[SubscriptionType(subscription_type)]


def is_subscription_active(subscription: Any, now: Optional[datetime] = None) -> bool:
    return subscription.status == SubscriptionStatus.ACTIVE and (now or utcnow()) < subscription.end_date


def is_subscription_expired(subscription: Any, now: Optional[datetime] = None) -> bool:
    return (now or utcnow()) > subscription.end_date


def yearly_savings_percent() -> int:
    monthly = SUBSCRIPTION_PRICES[SubscriptionType.MONTHLY] * 12
    yearly = SUBSCRIPTION_PRICES[SubscriptionType.YEARLY]
    return round((monthly - yearly) / monthly * 100)


# Notifications

def notification_sent(now: Optional[datetime] = None) -> Dict[str, Any]:
    return {"delivery_status": DeliveryStatus.SENT.value, "sent_at": now or utcnow()}


def notification_failed() -> Dict[str, Any]:
    return {"delivery_status": DeliveryStatus.FAILED.value}


def localized(entity: Any, attribute: str, language: str) -> str:
    """Pick ``<attribute>_en`` or ``<attribute>_tr`` for the language."""
    suffix = "tr" if language == "tr" else "en"
    return getattr(entity, f"{attribute}_{suffix}")
