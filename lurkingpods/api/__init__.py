"""
LurkingPods API Module

HTTP API for accounts, subscriptions, daily podcast content and operator tools.
"""

from .app import app
from .auth import RateLimiter, RateLimit, get_current_user, require_access, verify_admin_key
from .schemas import ErrorResponse, HealthCheckResponse

__all__ = [
    "app",
    "RateLimiter",
    "RateLimit",
    "get_current_user",
    "require_access",
    "verify_admin_key",
    "ErrorResponse",
    "HealthCheckResponse",
]
