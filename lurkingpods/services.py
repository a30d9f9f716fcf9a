"""
Domain services for users, categories, podcasts, subscriptions and notifications.

Services validate input, apply the lifecycle helpers and persist through the
repositories. They raise the typed errors from ``lurkingpods.errors``.
"""

import base64
import binascii
import json
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import bcrypt
import requests

from .errors import AuthenticationFailed, ConflictError, EntityNotFound, ValidationFailed
from .lifecycle import (
    SUBSCRIPTION_PRICES,
    is_subscription_active,
    is_subscription_expired,
    localized,
    next_refresh_time,
    notification_failed,
    notification_sent,
    podcast_expiry,
    subscription_end_date,
    subscription_price,
    trial_dates,
    trial_days_remaining,
    trial_status,
    yearly_savings_percent,
)
from .models import (
    Category,
    DeliveryStatus,
    JobStatus,
    Notification,
    NotificationType,
    Podcast,
    Subscription,
    SubscriptionStatus,
    SubscriptionType,
    User,
)
from .repository import (
    CategoryRepository,
    JobRepository,
    NotificationRepository,
    PodcastRepository,
    SubscriptionRepository,
    UserRepository,
)
from .utils.dates import at_utc_time, utcnow
from .utils.logger import setup_logger
from .validation import (
    PLATFORMS,
    SUPPORTED_CURRENCY,
    validate_category,
    validate_choice,
    validate_email,
    validate_language,
    validate_length,
    validate_notification,
    validate_password,
    validate_podcast,
    validate_preferences,
    validate_subscription,
)

logger = setup_logger(__name__)

BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72
DAILY_MIX_SIZE = 6

PREFERENCE_FIELDS = (
    "language_preference",
    "notification_enabled",
    "notification_time",
    "favorite_categories",
    "theme_preference",
)


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


class UserService:
    """Registration, login and preferences."""

    def __init__(self, users: Optional[UserRepository] = None):
        self.users = users or UserRepository()

    def register(self, email: str, password: str, language_preference: str = "en") -> User:
        """
        Create a user with a fresh 2-day trial.

        Raises:
            ValidationFailed: for a bad email, short password or unknown language
            ConflictError: if the email is already registered
        """
        validate_email(email)
        validate_password(password)
        validate_language(language_preference, "language_preference")
        if self.users.get_by_email(email) is not None:
            raise ConflictError("Email already in use")

        user = self.users.create(
            email=email,
            password_hash=hash_password(password),
            language_preference=language_preference,
            subscription_status=SubscriptionStatus.TRIAL,
            favorite_categories=[],
            **trial_dates(),
        )
        logger.info(f"Registered user {user.id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.users.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationFailed("Invalid email or password")
        return user

    def get(self, user_id: str) -> User:
        return self.users.get_or_raise(user_id)

    def access(self, user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Trial and access summary for a user."""
        now = now or utcnow()
        status = trial_status(user, now)
        return {
            "is_trial": user.subscription_status == SubscriptionStatus.TRIAL.value,
            "trial_start_date": user.trial_start_date,
            "trial_end_date": user.trial_end_date,
            "days_remaining": trial_days_remaining(user, now),
            "is_expired": status["is_expired"],
            "has_access": status["has_access"],
        }

    def update_preferences(self, user_id: str, changes: Dict[str, Any]) -> User:
        """
        Update the preference fields present in ``changes``.

        Args:
            user_id: User identifier
            changes: Subset of the preference fields; ``None`` values are ignored

        Returns:
            Updated user
        """
        changes = {key: value for key, value in changes.items() if key in PREFERENCE_FIELDS and value is not None}
        validate_preferences(changes)
        if "favorite_categories" in changes:
            changes["favorite_categories"] = [str(category_id) for category_id in changes["favorite_categories"]]
        user = self.users.update(user_id, updated_at=utcnow(), **changes)
        logger.info(f"Updated preferences for user {user_id}: {sorted(changes)}")
        return user

    def register_device(self, user_id: str, device_token: str, platform: str) -> User:
        validate_length("device_token", device_token, 1)
        validate_choice("platform", platform, PLATFORMS)
        return self.users.update(user_id, device_token=device_token, device_platform=platform, updated_at=utcnow())


class CategoryService:
    """Podcast categories."""

    def __init__(self, categories: Optional[CategoryRepository] = None):
        self.categories = categories or CategoryRepository()

    def create(self, data: Dict[str, Any]) -> Category:
        validate_category(data)
        if self.categories.first(name=data["name"]) is not None:
            raise ConflictError(f"Category '{data['name']}' already exists")
        category = self.categories.create(**data)
        logger.info(f"Created category {category.name} ({category.id})")
        return category

    def get(self, category_id: str) -> Category:
        return self.categories.get_or_raise(category_id)

    def list_active(self) -> List[Category]:
        return self.categories.query(order_by="sort_order", is_active=True)

    @staticmethod
    def localize(category: Category, language: str) -> Dict[str, Any]:
        """Category fields with display name and description in ``language``."""
        return {
            "id": category.id,
            "name": category.name,
            "display_name": localized(category, "display_name", language),
            "description": localized(category, "description", language),
            "icon_url": category.icon_url,
            "color_hex": category.color_hex,
            "is_active": category.is_active,
            "sort_order": category.sort_order,
        }


class PodcastService:
    """Podcast listing, playback counts and the expiry sweep."""

    def __init__(self, podcasts: Optional[PodcastRepository] = None, storage=None):
        self.podcasts = podcasts or PodcastRepository()
        self.storage = storage

    def create(self, data: Dict[str, Any], now: Optional[datetime] = None) -> Podcast:
        """
        Create a podcast directly; expiry is fixed at creation.

        Raises:
            ValidationFailed: if any podcast rule is violated
        """
        validate_podcast(data)
        created_at = now or utcnow()
        values = dict(data)
        values.setdefault("generation_date", created_at)
        return self.podcasts.create(
            **values,
            created_at=created_at,
            expires_at=podcast_expiry(created_at),
        )

    def get(self, podcast_id: str) -> Podcast:
        return self.podcasts.get_or_raise(podcast_id)

    def daily_mix(self, language: str, now: Optional[datetime] = None,
                  limit: int = DAILY_MIX_SIZE) -> List[Podcast]:
        """Unexpired podcasts in ``language``, featured first, newest first."""
        validate_language(language)
        now = now or utcnow()
        podcasts = self.podcasts.query(Podcast.expires_at > now, order_by="-created_at", language=language)
        podcasts.sort(key=lambda podcast: not podcast.is_featured)
        return podcasts[:limit]

    def by_category(self, category_id: str, language: Optional[str] = None,
                    now: Optional[datetime] = None) -> List[Podcast]:
        filters = {"category_id": category_id}
        if language is not None:
            filters["language"] = validate_language(language)
        return self.podcasts.query(Podcast.expires_at > (now or utcnow()), order_by="-created_at", **filters)

    def record_play(self, podcast_id: str) -> Podcast:
        return self.podcasts.increment_play_count(podcast_id)

    def set_featured(self, podcast_id: str, is_featured: bool) -> Podcast:
        podcast = self.podcasts.update(podcast_id, is_featured=bool(is_featured))
        logger.info(f"Podcast {podcast_id} featured={podcast.is_featured}")
        return podcast

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Delete expired podcasts and their stored audio; returns the number deleted."""
        deleted = self.podcasts.delete_where(Podcast.expires_at < (now or utcnow()))
        if self.storage is not None:
            for podcast in deleted:
                if not self.storage.delete_file(podcast.audio_file_url):
                    logger.warning(f"Audio for expired podcast {podcast.id} was not deleted")
        logger.info(f"Deleted {len(deleted)} expired podcasts")
        return len(deleted)

    @staticmethod
    def next_refresh(now: Optional[datetime] = None) -> datetime:
        return next_refresh_time(now)


def decode_receipt(receipt_data: str) -> Dict[str, str]:
    """
    Decode a store receipt.

    Receipts are base64-encoded JSON carrying ``product_id`` (ending in
    ``monthly`` or ``yearly``) and ``transaction_id``.

    Raises:
        ValidationFailed: if the receipt cannot be decoded or is incomplete
    """
    try:
        payload = json.loads(base64.b64decode(receipt_data, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ValidationFailed("receipt_data", "is not a valid receipt") from e
    if not isinstance(payload, dict):
        raise ValidationFailed("receipt_data", "is not a valid receipt")

    product_id = str(payload.get("product_id") or "")
    subscription_type = product_id.rsplit(".", 1)[-1]
    if subscription_type not in (SubscriptionType.MONTHLY.value, SubscriptionType.YEARLY.value):
        raise ValidationFailed("product_id", "must end with monthly or yearly")
    transaction_id = str(payload.get("transaction_id") or "")
    validate_length("transaction_id", transaction_id, 1)
    return {"subscription_type": subscription_type, "transaction_id": transaction_id}


class SubscriptionService:
    """Store purchases and subscription status."""

    def __init__(self, subscriptions: Optional[SubscriptionRepository] = None,
                 users: Optional[UserRepository] = None):
        self.subscriptions = subscriptions or SubscriptionRepository()
        self.users = users or UserRepository()

    def verify_and_subscribe(self, user_id: str, platform: str, receipt_data: str,
                             now: Optional[datetime] = None) -> Subscription:
        """
        Verify a store receipt and activate the subscription it pays for.

        Raises:
            ValidationFailed: for an unknown platform or invalid receipt
            ConflictError: if the transaction was already used
        """
        validate_choice("platform", platform, PLATFORMS)
        receipt = decode_receipt(receipt_data)
        return self.create(
            user_id,
            {
                "subscription_type": receipt["subscription_type"],
                "payment_method": platform,
                "transaction_id": receipt["transaction_id"],
                "amount": subscription_price(receipt["subscription_type"]),
                "currency": SUPPORTED_CURRENCY,
            },
            now=now,
        )

    def create(self, user_id: str, data: Dict[str, Any], now: Optional[datetime] = None) -> Subscription:
        validate_subscription(data)
        self.users.get_or_raise(user_id)
        if self.subscriptions.first(transaction_id=data["transaction_id"]) is not None:
            raise ConflictError("Transaction already processed")

        start = now or utcnow()
        end = subscription_end_date(start, data["subscription_type"])
        subscription = self.subscriptions.create(
            user_id=user_id,
            status=SubscriptionStatus.ACTIVE,
            start_date=start,
            end_date=end,
            renewal_date=end,
            **data,
        )
        self.users.update(
            user_id,
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_type=data["subscription_type"],
            subscription_end_date=end,
            updated_at=start,
        )
        logger.info(f"User {user_id} subscribed ({data['subscription_type']}) until {end.isoformat()}")
        return subscription

    def cancel(self, user_id: str, now: Optional[datetime] = None) -> Subscription:
        subscription = self.subscriptions.latest_for_user(user_id)
        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE.value:
            raise EntityNotFound("Active subscription for user", user_id)

        now = now or utcnow()
        subscription = self.subscriptions.update(
            subscription.id, status=SubscriptionStatus.CANCELLED, cancelled_at=now
        )
        self.users.update(user_id, subscription_status=SubscriptionStatus.CANCELLED, updated_at=now)
        logger.info(f"User {user_id} cancelled subscription {subscription.id}")
        return subscription

    def status(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        subscription = self.subscriptions.latest_for_user(user_id)
        if subscription is None:
            return {
                "is_subscribed": False,
                "subscription_type": None,
                "end_date": None,
                "is_expired": False,
            }
        return {
            "is_subscribed": is_subscription_active(subscription, now),
            "subscription_type": subscription.subscription_type,
            "end_date": subscription.end_date,
            "is_expired": is_subscription_expired(subscription, now),
        }

    @staticmethod
    def prices() -> Dict[str, Dict[str, Any]]:
        return {
            "monthly": {
                "price": SUBSCRIPTION_PRICES[SubscriptionType.MONTHLY],
                "currency": SUPPORTED_CURRENCY,
                "period": "month",
            },
            "yearly": {
                "price": SUBSCRIPTION_PRICES[SubscriptionType.YEARLY],
                "currency": SUPPORTED_CURRENCY,
                "period": "year",
                "savings": yearly_savings_percent(),
            },
        }


NOTIFICATION_TEXT = {
    NotificationType.DAILY_CONTENT: {
        "title_en": "New Daily Podcasts Available!",
        "title_tr": "Yeni Günlük Podcastler Hazır!",
        "body_en": "Your daily AI-generated podcasts are ready to listen to.",
        "body_tr": "Günlük AI üretimi podcastleriniz dinlemeye hazır.",
    },
    NotificationType.TRIAL_EXPIRY: {
        "title_en": "Trial Expiring Soon",
        "title_tr": "Deneme Süresi Yakında Bitiyor",
        "body_en": "Your free trial will expire soon. Subscribe to continue enjoying our podcasts.",
        "body_tr": "Ücretsiz deneme süreniz yakında bitiyor. "
                   "Podcastlerimizi dinlemeye devam etmek için abone olun.",
    },
}

TRIAL_REMINDER_LEAD = timedelta(hours=1)


class NotificationService:
    """Queue push notifications and deliver them through the push gateway webhook."""

    def __init__(self, notifications: Optional[NotificationRepository] = None,
                 users: Optional[UserRepository] = None,
                 webhook_url: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout: float = 10):
        self.notifications = notifications or NotificationRepository()
        self.users = users or UserRepository()
        self.webhook_url = webhook_url or os.getenv("NOTIFICATION_WEBHOOK_URL")
        self.session = session or requests.Session()
        self.timeout = timeout

    def create(self, data: Dict[str, Any], now: Optional[datetime] = None) -> Notification:
        validate_notification(data, now)
        return self.notifications.create(delivery_status=DeliveryStatus.PENDING, **data)

    def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        return self.notifications.query(order_by="-scheduled_for", limit=limit, user_id=user_id)

    def create_daily_content(self, user: User, device_token: str,
                             now: Optional[datetime] = None) -> Notification:
        """Schedule the daily-content notification at the user's next notification time."""
        now = now or utcnow()
        hour, minute = (int(part) for part in user.notification_time.split(":"))
        scheduled_for = at_utc_time(now.date(), hour, minute)
        if scheduled_for <= now:
            scheduled_for += timedelta(days=1)
        return self._create_typed(user, NotificationType.DAILY_CONTENT, device_token, scheduled_for, now)

    def create_trial_expiry(self, user: User, device_token: str,
                            now: Optional[datetime] = None) -> Notification:
        """Schedule a reminder one hour before the trial ends."""
        scheduled_for = user.trial_end_date - TRIAL_REMINDER_LEAD
        return self._create_typed(user, NotificationType.TRIAL_EXPIRY, device_token, scheduled_for, now)

    def schedule_daily(self, now: Optional[datetime] = None) -> int:
        """Queue daily-content notifications for every user who opted in."""
        now = now or utcnow()
        users = self.users.query(User.device_token.isnot(None), notification_enabled=True)
        for user in users:
            self.create_daily_content(user, user.device_token, now)
        logger.info(f"Scheduled daily notifications for {len(users)} users")
        return len(users)

    def schedule_trial_reminders(self, now: Optional[datetime] = None) -> int:
        """Queue trial-expiry reminders for trials ending within the next day."""
        now = now or utcnow()
        users = self.users.query(
            User.device_token.isnot(None),
            User.trial_end_date > now + TRIAL_REMINDER_LEAD,
            User.trial_end_date <= now + timedelta(days=1),
            subscription_status=SubscriptionStatus.TRIAL,
            notification_enabled=True,
        )
        for user in users:
            already_queued = self.notifications.count(user_id=user.id, type=NotificationType.TRIAL_EXPIRY)
            if not already_queued:
                self.create_trial_expiry(user, user.device_token, now)
        return len(users)

    def dispatch_pending(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Deliver every pending notification that is due.

        Returns:
            Counts of ``sent`` and ``failed`` deliveries
        """
        now = now or utcnow()
        result = {"sent": 0, "failed": 0}
        if not self.webhook_url:
            logger.warning("NOTIFICATION_WEBHOOK_URL is not set; pending notifications stay queued")
            return result

        due = self.notifications.query(
            Notification.scheduled_for <= now,
            order_by="scheduled_for",
            delivery_status=DeliveryStatus.PENDING,
        )
        for notification in due:
            if self._deliver(notification):
                self.notifications.update(notification.id, **notification_sent(now))
                result["sent"] += 1
            else:
                self.notifications.update(notification.id, **notification_failed())
                result["failed"] += 1
        logger.info(f"Dispatched notifications: {result['sent']} sent, {result['failed']} failed")
        return result

    def _create_typed(self, user: User, notification_type: NotificationType, device_token: str,
                      scheduled_for: datetime, now: Optional[datetime]) -> Notification:
        return self.create(
            {
                "user_id": user.id,
                "type": notification_type,
                "scheduled_for": scheduled_for,
                "device_token": device_token,
                **NOTIFICATION_TEXT[notification_type],
            },
            now=now,
        )

    def _deliver(self, notification: Notification) -> bool:
        user = self.users.get(notification.user_id)
        language = user.language_preference if user else "en"
        payload = {
            "notification_id": notification.id,
            "type": notification.type,
            "device_token": notification.device_token,
            "platform": user.device_platform if user else None,
            "title": localized(notification, "title", language),
            "body": localized(notification, "body", language),
        }
        try:
            response = self.session.post(
                self.webhook_url,
                json=payload,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        except requests.RequestException as e:
            logger.error(f"Failed to send notification {notification.id}: {str(e)}")
            return False

        if response.status_code >= 400:
            logger.error(f"Notification {notification.id} rejected: {response.status_code} - {response.text}")
            return False
        return True


def collect_stats(podcasts: Optional[PodcastRepository] = None,
                  categories: Optional[CategoryRepository] = None,
                  jobs: Optional[JobRepository] = None) -> Dict[str, Any]:
    """Counts shown on the admin dashboard."""
    podcasts = podcasts or PodcastRepository()
    categories = categories or CategoryRepository()
    jobs = jobs or JobRepository()
    last_completed = jobs.first(order_by="-completed_at", status=JobStatus.COMPLETED)
    return {
        "total_podcasts": podcasts.count(),
        "active_categories": categories.count(is_active=True),
        "pending_jobs": jobs.count(status=JobStatus.PENDING),
        "generating_jobs": jobs.count(status=JobStatus.GENERATING),
        "failed_jobs": jobs.count(status=JobStatus.FAILED),
        "completed_jobs": jobs.count(status=JobStatus.COMPLETED),
        "last_generation": last_completed.completed_at if last_completed else None,
    }
