"""
Tests for the user, category, podcast, subscription and notification services.
"""

import base64
import json
from datetime import datetime, timedelta
from unittest import mock

import pytest
import requests

from lurkingpods.errors import AuthenticationFailed, ConflictError, EntityNotFound, ValidationFailed
from lurkingpods.models import DeliveryStatus, JobStatus, NotificationType, SubscriptionStatus
from lurkingpods.repository import (
    JobRepository,
    NotificationRepository,
    PodcastRepository,
    UserRepository,
)
from lurkingpods.services import (
    CategoryService,
    NotificationService,
    PodcastService,
    SubscriptionService,
    UserService,
    collect_stats,
    decode_receipt,
    hash_password,
    verify_password,
)
from lurkingpods.utils.dates import utcnow

from conftest import SCRIPT_CONTENT, FakeStorage


def receipt(product_id="com.lurkingpods.monthly", transaction_id="txn-1"):
    payload = json.dumps({"product_id": product_id, "transaction_id": transaction_id})
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


@pytest.fixture
def users():
    return UserService(UserRepository())


@pytest.fixture
def user(users):
    return users.register("listener@example.com", "s3cretpass", "tr")


def podcast_data(**overrides):
    data = {
        "category_id": "c1",
        "language": "en",
        "title": "Tech Today",
        "description": "",
        "script_content": SCRIPT_CONTENT,
        "audio_file_url": "https://cdn.test/podcasts/en/c1/job.mp3",
        "audio_duration": 60,
        "speaker_1_voice_id": "v1",
        "speaker_2_voice_id": "v2",
        "quality_score": 0.8,
    }
    data.update(overrides)
    return data


# Users

def test_password_hashing():
    hashed = hash_password("s3cretpass")
    assert hashed != "s3cretpass"
    assert verify_password("s3cretpass", hashed)
    assert not verify_password("wrong-password", hashed)
    assert not verify_password("s3cretpass", "not-a-bcrypt-hash")


def test_register_starts_two_day_trial(user):
    assert user.subscription_status == SubscriptionStatus.TRIAL
    assert user.trial_end_date - user.trial_start_date == timedelta(days=2)
    assert user.language_preference == "tr"
    assert user.password_hash != "s3cretpass"


def test_register_rejects_duplicates_and_bad_input(users, user):
    with pytest.raises(ConflictError):
        users.register("listener@example.com", "anotherpass")
    with pytest.raises(ValidationFailed) as exc_info:
        users.register("new@example.com", "short")
    assert exc_info.value.field == "password"
    with pytest.raises(ValidationFailed):
        users.register("bad-email", "s3cretpass")


def test_authenticate(users, user):
    assert users.authenticate("listener@example.com", "s3cretpass").id == user.id
    with pytest.raises(AuthenticationFailed):
        users.authenticate("listener@example.com", "wrong-password")
    with pytest.raises(AuthenticationFailed):
        users.authenticate("nobody@example.com", "s3cretpass")


def test_access_summary_after_trial(users, user):
    access = users.access(user, now=user.trial_end_date + timedelta(minutes=1))
    assert access["is_trial"] is True
    assert access["is_expired"] is True
    assert access["has_access"] is False
    assert access["days_remaining"] == 0


def test_update_preferences(users, user):
    updated = users.update_preferences(user.id, {
        "theme_preference": "dark",
        "notification_time": "08:15",
        "favorite_categories": ["c1"],
        "email": "ignored@example.com",
        "language_preference": None,
    })
    assert updated.theme_preference == "dark"
    assert updated.notification_time == "08:15"
    assert updated.favorite_categories == ["c1"]
    assert updated.email == "listener@example.com"
    assert updated.language_preference == "tr"

    with pytest.raises(ValidationFailed):
        users.update_preferences(user.id, {"language_preference": "de"})


def test_register_device(users, user):
    updated = users.register_device(user.id, "device-token", "ios")
    assert (updated.device_token, updated.device_platform) == ("device-token", "ios")
    with pytest.raises(ValidationFailed):
        users.register_device(user.id, "device-token", "windows")


# Categories

def test_category_create_and_localize(category):
    categories = CategoryService()
    assert [c.id for c in categories.list_active()] == ["c1"]
    localized = CategoryService.localize(category, "tr")
    assert localized["display_name"] == "Teknoloji"
    assert localized["description"] == "Cihazlar ve yazılımlar"

    with pytest.raises(ConflictError):
        categories.create({
            "name": "technology",
            "display_name_en": "Tech",
            "display_name_tr": "Teknoloji",
            "color_hex": "#000000",
        })


# Podcasts

def test_daily_mix_puts_featured_first_and_skips_expired(category):
    podcasts = PodcastService(PodcastRepository())
    now = utcnow()
    old = podcasts.create(podcast_data(title="Old episode"), now=now - timedelta(days=8))
    first = podcasts.create(podcast_data(title="First episode"), now=now - timedelta(hours=2))
    second = podcasts.create(podcast_data(title="Second episode"), now=now - timedelta(hours=1))
    podcasts.create(podcast_data(title="Turkish episode", language="tr"), now=now)
    podcasts.set_featured(first.id, True)

    mix = podcasts.daily_mix("en", now=now)
    assert [p.id for p in mix] == [first.id, second.id]
    assert old.id not in [p.id for p in podcasts.by_category("c1", "en", now=now)]


def test_record_play_increments_count(category):
    podcasts = PodcastService(PodcastRepository())
    podcast = podcasts.create(podcast_data())
    podcasts.record_play(podcast.id)
    assert podcasts.record_play(podcast.id).play_count == 2
    with pytest.raises(EntityNotFound):
        podcasts.record_play("missing")


def test_delete_expired_removes_audio(category):
    storage = FakeStorage()
    podcasts = PodcastService(PodcastRepository(), storage=storage)
    now = utcnow()
    expired = podcasts.create(podcast_data(audio_file_url="https://cdn.test/old.mp3"), now=now - timedelta(days=8))
    fresh = podcasts.create(podcast_data(), now=now)

    assert podcasts.delete_expired(now) == 1
    assert storage.deleted == ["https://cdn.test/old.mp3"]
    assert PodcastRepository().get(expired.id) is None
    assert PodcastRepository().get(fresh.id) is not None


def test_next_refresh_is_next_utc_midnight():
    assert PodcastService.next_refresh(datetime(2024, 3, 1, 23, 59)) == datetime(2024, 3, 2)


# Subscriptions

def test_decode_receipt():
    assert decode_receipt(receipt("com.lurkingpods.yearly", "txn-9")) == {
        "subscription_type": "yearly",
        "transaction_id": "txn-9",
    }
    with pytest.raises(ValidationFailed):
        decode_receipt("%%% not base64 %%%")
    with pytest.raises(ValidationFailed) as exc_info:
        decode_receipt(receipt("com.lurkingpods.weekly"))
    assert exc_info.value.field == "product_id"


def test_subscribe_activates_user(user):
    subscriptions = SubscriptionService()
    now = datetime(2024, 1, 31, 9, 0)
    subscription = subscriptions.verify_and_subscribe(user.id, "ios", receipt(), now=now)

    assert subscription.subscription_type == "monthly"
    assert subscription.amount == 9.99
    assert subscription.end_date == datetime(2024, 2, 29, 9, 0)

    stored = UserRepository().get(user.id)
    assert stored.subscription_status == SubscriptionStatus.ACTIVE
    assert stored.subscription_end_date == subscription.end_date

    status = subscriptions.status(user.id, now=now + timedelta(days=1))
    assert status["is_subscribed"] is True
    assert status["is_expired"] is False


def test_subscribe_rejects_reused_transaction(user):
    subscriptions = SubscriptionService()
    subscriptions.verify_and_subscribe(user.id, "android", receipt())
    with pytest.raises(ConflictError):
        subscriptions.verify_and_subscribe(user.id, "android", receipt())


def test_cancel_subscription(user):
    subscriptions = SubscriptionService()
    with pytest.raises(EntityNotFound):
        subscriptions.cancel(user.id)

    subscriptions.verify_and_subscribe(user.id, "ios", receipt())
    cancelled = subscriptions.cancel(user.id)
    assert cancelled.status == SubscriptionStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert UserRepository().get(user.id).subscription_status == SubscriptionStatus.CANCELLED
    assert subscriptions.status(user.id)["is_subscribed"] is False


def test_prices():
    prices = SubscriptionService.prices()
    assert prices["monthly"]["price"] == 9.99
    assert prices["yearly"]["savings"] == 17


# Notifications

def _webhook_session(status_code=200):
    session = mock.Mock()
    session.post.return_value = mock.Mock(status_code=status_code, text="")
    return session


def test_daily_notification_uses_next_notification_time(users, user):
    notifications = NotificationService(webhook_url="https://push.test/send", session=_webhook_session())
    user = users.update_preferences(user.id, {"notification_time": "07:30"})

    before = notifications.create_daily_content(user, "token", now=datetime(2030, 5, 1, 6, 0))
    after = notifications.create_daily_content(user, "token", now=datetime(2030, 5, 1, 8, 0))

    assert before.scheduled_for == datetime(2030, 5, 1, 7, 30)
    assert after.scheduled_for == datetime(2030, 5, 2, 7, 30)
    assert before.type == NotificationType.DAILY_CONTENT
    assert before.delivery_status == DeliveryStatus.PENDING


def test_dispatch_pending_marks_sent_and_failed(users, user):
    users.register_device(user.id, "device-token", "android")
    session = _webhook_session()
    notifications = NotificationService(webhook_url="https://push.test/send", session=session)
    now = utcnow()
    notification = notifications.create_daily_content(UserRepository().get(user.id), "device-token", now=now)

    result = notifications.dispatch_pending(now=notification.scheduled_for + timedelta(minutes=1))

    assert result == {"sent": 1, "failed": 0}
    payload = session.post.call_args.kwargs["json"]
    assert payload["device_token"] == "device-token"
    assert payload["platform"] == "android"
    # Turkish user gets Turkish copy
    assert payload["title"] == "Yeni Günlük Podcastler Hazır!"
    stored = NotificationRepository().get(notification.id)
    assert stored.delivery_status == DeliveryStatus.SENT
    assert stored.sent_at is not None

    session.post.return_value = mock.Mock(status_code=500, text="down")
    second = notifications.create_daily_content(UserRepository().get(user.id), "device-token", now=now)
    assert notifications.dispatch_pending(now=second.scheduled_for) == {"sent": 0, "failed": 1}
    assert NotificationRepository().get(second.id).delivery_status == DeliveryStatus.FAILED


def test_dispatch_skips_notifications_not_yet_due(user):
    session = _webhook_session()
    notifications = NotificationService(webhook_url="https://push.test/send", session=session)
    now = utcnow()
    notifications.create_daily_content(user, "token", now=now)

    assert notifications.dispatch_pending(now=now) == {"sent": 0, "failed": 0}
    session.post.assert_not_called()


def test_dispatch_connection_error_marks_failed(user):
    session = _webhook_session()
    session.post.side_effect = requests.ConnectionError("refused")
    notifications = NotificationService(webhook_url="https://push.test/send", session=session)
    notification = notifications.create_daily_content(user, "token")

    assert notifications.dispatch_pending(now=notification.scheduled_for) == {"sent": 0, "failed": 1}


def test_dispatch_without_webhook_leaves_queue(monkeypatch, user):
    monkeypatch.delenv("NOTIFICATION_WEBHOOK_URL", raising=False)
    notifications = NotificationService(session=_webhook_session())
    notification = notifications.create_daily_content(user, "token")

    assert notifications.dispatch_pending(now=notification.scheduled_for) == {"sent": 0, "failed": 0}
    assert NotificationRepository().get(notification.id).delivery_status == DeliveryStatus.PENDING


def test_schedule_daily_only_for_opted_in_devices(users, user):
    other = users.register("second@example.com", "s3cretpass")
    users.register_device(user.id, "token-1", "ios")
    users.register_device(other.id, "token-2", "ios")
    users.update_preferences(other.id, {"notification_enabled": False})
    users.register("nodevice@example.com", "s3cretpass")

    notifications = NotificationService(webhook_url="https://push.test/send", session=_webhook_session())
    assert notifications.schedule_daily() == 1
    assert len(notifications.list_for_user(user.id)) == 1
    assert notifications.list_for_user(other.id) == []


def test_trial_reminder_is_queued_once(users, user):
    users.register_device(user.id, "token-1", "ios")
    notifications = NotificationService(webhook_url="https://push.test/send", session=_webhook_session())
    now = user.trial_end_date - timedelta(hours=12)

    notifications.schedule_trial_reminders(now)
    notifications.schedule_trial_reminders(now)

    queued = notifications.list_for_user(user.id)
    assert len(queued) == 1
    assert queued[0].type == NotificationType.TRIAL_EXPIRY
    assert queued[0].scheduled_for == user.trial_end_date - timedelta(hours=1)


def test_notification_in_the_past_is_rejected(user):
    notifications = NotificationService(webhook_url="https://push.test/send", session=_webhook_session())
    with pytest.raises(ValidationFailed):
        notifications.create({
            "user_id": user.id,
            "type": NotificationType.DAILY_CONTENT,
            "title_en": "t", "title_tr": "t", "body_en": "b", "body_tr": "b",
            "scheduled_for": utcnow() - timedelta(minutes=1),
            "device_token": "token",
        })


# Stats

def test_collect_stats(category, orchestrator):
    orchestrator.process_job(orchestrator.create_job("c1", "en").id)
    JobRepository().create(category_id="c1", language="tr", status=JobStatus.PENDING, started_at=utcnow())

    stats = collect_stats()
    assert stats["total_podcasts"] == 1
    assert stats["active_categories"] == 1
    assert stats["completed_jobs"] == 1
    assert stats["pending_jobs"] == 1
    assert stats["failed_jobs"] == 0
    assert stats["last_generation"] is not None
