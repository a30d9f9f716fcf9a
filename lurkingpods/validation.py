"""
Field validation rules.

Every ``validate_*`` function raises ``ValidationFailed`` on the first rule
violated and returns the value unchanged otherwise, so callers can validate
a whole payload before anything is persisted.
"""

import re
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from .errors import ValidationFailed
from .utils.dates import to_naive_utc, utcnow

LANGUAGES = ("en", "tr")
THEMES = ("light", "dark", "system")
PLATFORMS = ("ios", "android")
SUBSCRIPTION_TYPES = ("monthly", "yearly")
SUPPORTED_CURRENCY = "USD"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
COLOR_HEX_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
NOTIFICATION_TIME_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")

CATEGORY_NAME_LENGTH = (3, 50)
DISPLAY_NAME_LENGTH = (3, 100)
PODCAST_TITLE_LENGTH = (3, 100)
SCRIPT_CONTENT_LENGTH = (100, 5000)
AUDIO_DURATION_RANGE = (45, 75)
QUALITY_SCORE_RANGE = (0.0, 1.0)
PASSWORD_MIN_LENGTH = 8


def validate_length(field: str, value: Optional[str], minimum: int, maximum: Optional[int] = None) -> str:
    if value is None:
        raise ValidationFailed(field, "is required")
    if len(value) < minimum:
        raise ValidationFailed(field, f"length must be at least {minimum}")
    if maximum is not None and len(value) > maximum:
        raise ValidationFailed(field, f"length must be at most {maximum}")
    return value


def validate_range(field: str, value: Optional[float], minimum: float, maximum: float) -> float:
    if value is None:
        raise ValidationFailed(field, "is required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailed(field, "must be a number")
    if value < minimum or value > maximum:
        raise ValidationFailed(field, f"must be between {minimum} and {maximum}")
    return value


def validate_choice(field: str, value: Any, choices: Iterable[str]) -> Any:
    choices = tuple(choices)
    # str enums compare equal to their value
    if value not in choices:
        raise ValidationFailed(field, f"must be one of {', '.join(choices)}")
    return value


def validate_pattern(field: str, value: Optional[str], pattern: "re.Pattern[str]", rule: str) -> str:
    if value is None or not pattern.fullmatch(value):
        raise ValidationFailed(field, rule)
    return value


def validate_language(value: Any, field: str = "language") -> Any:
    return validate_choice(field, value, LANGUAGES)


# Category

def validate_category_name(name: str) -> str:
    return validate_length("name", name, *CATEGORY_NAME_LENGTH)


def validate_display_name(display_name: str, field: str = "display_name_en") -> str:
    return validate_length(field, display_name, *DISPLAY_NAME_LENGTH)


def validate_color_hex(color_hex: str) -> str:
    return validate_pattern("color_hex", color_hex, COLOR_HEX_PATTERN, "must match #RRGGBB")


def validate_category(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a category payload before creation."""
    validate_category_name(data.get("name"))
    validate_display_name(data.get("display_name_en"), "display_name_en")
    validate_display_name(data.get("display_name_tr"), "display_name_tr")
    validate_color_hex(data.get("color_hex"))
    return data


# Podcast

def validate_podcast(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a podcast payload before creation.

    Args:
        data: Podcast fields

    Returns:
        The same payload

    Raises:
        ValidationFailed: on the first violated rule
    """
    validate_language(data.get("language"))
    validate_length("title", data.get("title"), *PODCAST_TITLE_LENGTH)
    validate_length("script_content", data.get("script_content"), *SCRIPT_CONTENT_LENGTH)
    duration = data.get("audio_duration")
    # stored in an Integer column
    if duration is not None and (isinstance(duration, bool) or not isinstance(duration, int)):
        raise ValidationFailed("audio_duration", "must be a whole number of seconds")
    validate_range("audio_duration", duration, *AUDIO_DURATION_RANGE)
    validate_range("quality_score", data.get("quality_score"), *QUALITY_SCORE_RANGE)
    return data


# Subscription

def validate_amount(amount: float) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise ValidationFailed("amount", "must be greater than 0")
    return amount


def validate_currency(currency: str) -> str:
    if currency != SUPPORTED_CURRENCY:
        raise ValidationFailed("currency", f"must be {SUPPORTED_CURRENCY}")
    return currency


def validate_subscription(data: Dict[str, Any]) -> Dict[str, Any]:
    validate_choice("subscription_type", data.get("subscription_type"), SUBSCRIPTION_TYPES)
    validate_choice("payment_method", data.get("payment_method"), PLATFORMS)
    validate_length("transaction_id", data.get("transaction_id"), 1)
    validate_amount(data.get("amount"))
    validate_currency(data.get("currency"))
    return data


# User

def validate_email(email: str) -> str:
    return validate_pattern("email", email, EMAIL_PATTERN, "must be a valid email address")


def validate_password(password: str) -> str:
    return validate_length("password", password, PASSWORD_MIN_LENGTH)


def validate_preferences(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the subset of user preferences present in ``data``."""
    if data.get("language_preference") is not None:
        validate_language(data["language_preference"], "language_preference")
    if data.get("theme_preference") is not None:
        validate_choice("theme_preference", data["theme_preference"], THEMES)
    if data.get("notification_time") is not None:
        validate_pattern(
            "notification_time", data["notification_time"],
            NOTIFICATION_TIME_PATTERN, "must be HH:MM"
        )
    return data


# Notification

def validate_notification(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    validate_length("device_token", data.get("device_token"), 1)
    scheduled_for = data.get("scheduled_for")
    if scheduled_for is None:
        raise ValidationFailed("scheduled_for", "is required")
    if to_naive_utc(scheduled_for) <= now:
        raise ValidationFailed("scheduled_for", "must be in the future")
    return data
