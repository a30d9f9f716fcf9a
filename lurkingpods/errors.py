"""
Error types raised by the LurkingPods services.

Each error carries structured fields so callers (the API layer, the Celery
tasks) can branch on the kind of failure instead of parsing messages.
"""

from typing import Optional


class LurkingPodsError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EntityNotFound(LurkingPodsError):
    """A record with the given identifier does not exist."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStatusTransition(LurkingPodsError):
    """A job status change is not allowed by the transition table."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Invalid status transition: {current} -> {target}")
        self.current = current
        self.target = target


class ValidationFailed(LurkingPodsError):
    """A field value violates a validation rule."""

    def __init__(self, field: str, rule: str):
        super().__init__(f"Validation failed for '{field}': {rule}")
        self.field = field
        self.rule = rule


class ProviderError(LurkingPodsError):
    """An external provider (script, audio or storage) failed."""

    STAGES = ("script", "audio", "storage")

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage} provider error: {message}")
        self.stage = stage
        self.detail = message


class JobNotRetryable(LurkingPodsError):
    """A job is not failed or has exhausted its retries."""

    def __init__(self, job_id: str, status: str, retry_count: int, max_retries: int):
        super().__init__(
            f"Job {job_id} cannot be retried "
            f"(status={status}, retry_count={retry_count}, max_retries={max_retries})"
        )
        self.job_id = job_id
        self.status = status
        self.retry_count = retry_count
        self.max_retries = max_retries


class ConflictError(LurkingPodsError):
    """A unique value (email, transaction id, category name) is already taken."""


class AuthenticationFailed(LurkingPodsError):
    """Credentials or bearer token are missing or invalid."""


class AccessDenied(LurkingPodsError):
    """The caller is authenticated but lacks access to the resource."""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
