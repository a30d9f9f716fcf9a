"""
Tests for the Celery tasks and beat schedule.
"""

from datetime import timedelta

import pytest

from lurkingpods import tasks
from lurkingpods.errors import ProviderError
from lurkingpods.repository import PodcastRepository, UserRepository
from lurkingpods.services import PodcastService, UserService
from lurkingpods.utils.dates import utcnow

from conftest import SCRIPT_CONTENT, FakeStorage, make_script


def test_beat_schedule():
    schedule = tasks.celery_app.conf.beat_schedule
    assert schedule["generate-daily-content"]["task"] == "lurkingpods.tasks.generate_daily_content"
    assert schedule["generate-daily-content"]["schedule"].hour == {0}
    assert schedule["generate-daily-content"]["schedule"].minute == {0}
    assert schedule["dispatch-notifications"]["schedule"].minute == set(range(0, 60, 5))
    assert schedule["cleanup-expired-podcasts"]["schedule"].hour == {1}
    assert set(schedule) == {
        "generate-daily-content",
        "dispatch-notifications",
        "cleanup-expired-podcasts",
        "retry-failed-jobs",
    }


def test_generate_daily_content_queues_notifications(monkeypatch, orchestrator, category):
    users = UserService()
    user = users.register("listener@example.com", "s3cretpass")
    users.register_device(user.id, "token", "ios")
    monkeypatch.setattr(tasks, "build_orchestrator", lambda: orchestrator)

    result = tasks.generate_daily_content()

    assert len(result["completed"]) == 2
    assert result["failed"] == []
    assert result["notifications_scheduled"] == 1


def test_retry_failed_jobs_task(monkeypatch, orchestrator, category, script_generator):
    script_generator.outcomes = [ProviderError("script", "boom"), make_script()]
    job = orchestrator.create_job("c1", "en")
    with pytest.raises(ProviderError):
        orchestrator.process_job(job.id)
    monkeypatch.setattr(tasks, "build_orchestrator", lambda: orchestrator)

    assert tasks.retry_failed_jobs() == {job.id: "completed"}


def test_cleanup_expired_podcasts_task(monkeypatch, category):
    storage = FakeStorage()
    monkeypatch.setattr(tasks, "get_storage_manager", lambda: storage)
    PodcastService(PodcastRepository()).create({
        "category_id": "c1",
        "language": "en",
        "title": "Old episode",
        "description": "",
        "script_content": SCRIPT_CONTENT,
        "audio_file_url": "https://cdn.test/old.mp3",
        "audio_duration": 60,
        "speaker_1_voice_id": "v1",
        "speaker_2_voice_id": "v2",
        "quality_score": 0.8,
    }, now=utcnow() - timedelta(days=8))

    assert tasks.cleanup_expired_podcasts() == 1
    assert storage.deleted == ["https://cdn.test/old.mp3"]


def test_dispatch_notifications_task_without_webhook(monkeypatch):
    monkeypatch.delenv("NOTIFICATION_WEBHOOK_URL", raising=False)
    user = UserService().register("listener@example.com", "s3cretpass")
    UserRepository().update(user.id, device_token="token", trial_end_date=utcnow() + timedelta(hours=6))

    result = tasks.dispatch_notifications()

    assert result == {"sent": 0, "failed": 0, "trial_reminders": 1}
