"""
Authentication and rate limiting for the LurkingPods API.

This module provides bearer-token user authentication, the admin API key
check, Redis rate limiting and request tracking.
"""

import hmac
import os
import time
import uuid
from typing import Dict, Optional, Tuple

import redis
from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from ..errors import AccessDenied, AuthenticationFailed
from ..lifecycle import trial_status
from ..models import User
from ..services import UserService
from ..utils.logger import setup_logger
from .dependencies import get_user_service
from .schemas import ErrorResponse

logger = setup_logger(__name__)

# Initialize Redis client; connections are opened on first use
redis_client = redis.from_url(
    os.getenv("REDIS_URL", "redis://localhost:6379"),
    socket_connect_timeout=2,
    socket_timeout=2,
)

# Security scheme
security = HTTPBearer(auto_error=False)


class RateLimiter:
    """Sliding-window rate limiting using Redis sorted sets."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    def is_allowed(self, key: str, limit: int, window: int = 60) -> Tuple[bool, Dict]:
        """
        Check if request is allowed under rate limit.

        Args:
            key: Unique identifier (scope and client)
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, metadata)
        """
        now = time.time()
        pipeline = self.redis.pipeline()
        pipeline.zremrangebyscore(key, 0, now - window)
        pipeline.zadd(key, {f"{now}:{uuid.uuid4().hex}": now})
        pipeline.zcount(key, now - window, now)
        pipeline.expire(key, window + 1)
        results = pipeline.execute()

        current_requests = results[2]

        return current_requests <= limit, {
            "limit": limit,
            "remaining": max(0, limit - current_requests),
            "reset": int(now + window)
        }


# Initialize rate limiter
rate_limiter = RateLimiter(redis_client)


def client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimit:
    """FastAPI dependency enforcing one rate limit scope per client address."""

    def __init__(self, scope: str, limit: int, window: int):
        self.scope = scope
        self.limit = limit
        self.window = window

    async def __call__(self, request: Request):
        key = f"rate:{self.scope}:{client_address(request)}"
        try:
            is_allowed, info = rate_limiter.is_allowed(key, self.limit, self.window)
        except redis.RedisError as e:
            # Rate limiting is skipped while Redis is unreachable
            logger.error(f"Rate limiter unavailable: {str(e)}")
            return

        if not is_allowed:
            logger.warning(f"Rate limit exceeded for {key}")
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded",
                headers={
                    "X-RateLimit-Limit": str(info["limit"]),
                    "X-RateLimit-Remaining": str(info["remaining"]),
                    "X-RateLimit-Reset": str(info["reset"]),
                }
            )


general_limit = RateLimit("general", 100, 15 * 60)
auth_limit = RateLimit("auth", 5, 15 * 60)
content_limit = RateLimit("content", 30, 60)
subscription_limit = RateLimit("subscription", 10, 60)
admin_generate_limit = RateLimit("admin_generate", 3, 60)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    users: UserService = Depends(get_user_service),
) -> User:
    """Resolve the bearer token (the user id issued at login) to a user."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationFailed("Authentication required")
    user = users.users.get(credentials.credentials)
    if user is None:
        logger.warning(f"Unknown bearer token attempted: {credentials.credentials[:8]}...")
        raise AuthenticationFailed("Invalid or expired session")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    users: UserService = Depends(get_user_service),
) -> Optional[User]:
    """Like ``get_current_user`` but anonymous callers get ``None``."""
    if credentials is None or not credentials.credentials:
        return None
    return users.users.get(credentials.credentials)


async def require_access(user: User = Depends(get_current_user)) -> User:
    """Allow users in their trial or with an active subscription."""
    if not trial_status(user)["has_access"]:
        raise AccessDenied("Trial expired. Subscribe to keep listening.", reason="trial_expired")
    return user


async def verify_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    """Check the ``X-Admin-Key`` header against ``ADMIN_API_KEY``."""
    expected = os.getenv("ADMIN_API_KEY")
    if not expected:
        raise AccessDenied("Admin API is not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        logger.warning("Invalid admin key attempted")
        raise AuthenticationFailed("Invalid admin key")


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Request tracking, logging and security headers."""

    async def dispatch(self, request: Request, call_next):
        # Generate request ID
        request_id = request.headers.get("X-Request-ID") or f"req_{os.urandom(16).hex()}"
        request.state.request_id = request_id

        # Log request
        logger.info(f"Request {request_id}: {request.method} {request.url.path}")

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"Request {request_id} failed after {duration:.3f}s: {str(e)}")

            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    error="InternalServerError",
                    message="An unexpected error occurred",
                    request_id=request_id
                ).model_dump(),
                headers={"X-Request-ID": request_id},
            )

        # Add security headers
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Log response
        duration = time.time() - start_time
        logger.info(f"Request {request_id} completed in {duration:.3f}s with status {response.status_code}")

        return response
