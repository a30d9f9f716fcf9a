"""
Tests for the pure lifecycle helpers.
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from lurkingpods.errors import InvalidStatusTransition
from lurkingpods.lifecycle import (
    JobState,
    can_retry,
    changed_fields,
    ensure_transition,
    is_valid_transition,
    mark_as_completed,
    mark_as_failed,
    mark_as_started,
    podcast_expiry,
    reset_for_retry,
    subscription_end_date,
    trial_days_remaining,
    trial_status,
    yearly_savings_percent,
)
from lurkingpods.models import JobStatus, SubscriptionStatus, SubscriptionType

NOW = datetime(2024, 1, 31, 12, 0, 0)


@pytest.fixture
def job():
    return JobState(id="job-1", category_id="c1", language="en", status=JobStatus.PENDING, started_at=NOW)


def test_transition_table():
    assert is_valid_transition(JobStatus.PENDING, JobStatus.GENERATING)
    assert is_valid_transition(JobStatus.GENERATING, JobStatus.COMPLETED)
    assert is_valid_transition(JobStatus.GENERATING, JobStatus.FAILED)
    assert is_valid_transition(JobStatus.FAILED, JobStatus.PENDING)
    assert not is_valid_transition(JobStatus.PENDING, JobStatus.COMPLETED)
    for target in JobStatus:
        assert not is_valid_transition(JobStatus.COMPLETED, target)


def test_ensure_transition_reports_both_statuses():
    with pytest.raises(InvalidStatusTransition) as exc_info:
        ensure_transition(JobStatus.COMPLETED, JobStatus.GENERATING)
    assert exc_info.value.current == "completed"
    assert exc_info.value.target == "generating"


def test_mark_as_failed_three_times_counts_every_failure(job):
    for _ in range(3):
        job = mark_as_failed(job, "provider down", NOW)
    assert job.retry_count == 3
    assert job.status == JobStatus.FAILED
    assert job.error_message == "provider down"
    assert not can_retry(job)


def test_helpers_do_not_mutate_their_input(job):
    started = mark_as_started(job, NOW)
    assert job.status == JobStatus.PENDING
    assert started.status == JobStatus.GENERATING


def test_completed_job_links_its_podcast(job):
    done = mark_as_completed(mark_as_started(job, NOW), "podcast-1", NOW)
    assert done.status == JobStatus.COMPLETED
    assert done.generated_podcast_id == "podcast-1"
    assert done.completed_at == NOW


def test_reset_for_retry_keeps_retry_count(job):
    failed = mark_as_failed(mark_as_started(job, NOW), "boom", NOW)
    assert can_retry(failed)
    reset = reset_for_retry(failed, NOW + timedelta(hours=1))
    assert reset.status == JobStatus.PENDING
    assert reset.retry_count == 1
    assert reset.completed_at is None
    assert reset.error_message is None


def test_changed_fields_uses_column_values(job):
    changes = changed_fields(job, mark_as_failed(job, "boom", NOW))
    assert changes == {
        "status": "failed",
        "completed_at": NOW,
        "error_message": "boom",
        "retry_count": 1,
    }


def test_podcast_expires_after_seven_days():
    assert podcast_expiry(NOW) == NOW + timedelta(days=7)


def test_monthly_subscription_clamps_to_month_end():
    assert subscription_end_date(NOW, SubscriptionType.MONTHLY) == datetime(2024, 2, 29, 12, 0, 0)
    assert subscription_end_date(NOW, SubscriptionType.YEARLY) == datetime(2025, 1, 31, 12, 0, 0)


def test_trial_access_and_days_remaining():
    user = SimpleNamespace(
        trial_end_date=NOW + timedelta(days=1, hours=2),
        subscription_status=SubscriptionStatus.TRIAL.value,
        subscription_end_date=None,
    )
    assert trial_days_remaining(user, NOW) == 2
    assert trial_status(user, NOW) == {"is_expired": False, "has_access": True}

    later = NOW + timedelta(days=3)
    assert trial_days_remaining(user, later) == 0
    assert trial_status(user, later) == {"is_expired": True, "has_access": False}


def test_active_subscription_grants_access_after_trial():
    user = SimpleNamespace(
        trial_end_date=NOW - timedelta(days=5),
        subscription_status=SubscriptionStatus.ACTIVE.value,
        subscription_end_date=NOW + timedelta(days=20),
    )
    assert trial_status(user, NOW) == {"is_expired": True, "has_access": True}


def test_yearly_plan_saves_compared_to_monthly():
    assert yearly_savings_percent() == 17
