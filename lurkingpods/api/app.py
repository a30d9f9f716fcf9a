"""
FastAPI application for LurkingPods.

This module wires the routers, request tracking, rate limiting, error
handling, metrics and error reporting into the API application.
"""

import os
from typing import Any, Dict, Optional

import redis
import sentry_sdk
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from starlette.exceptions import HTTPException

from .. import __version__
from ..database import DatabaseManager
from ..errors import (
    AccessDenied,
    AuthenticationFailed,
    ConflictError,
    EntityNotFound,
    InvalidStatusTransition,
    JobNotRetryable,
    LurkingPodsError,
    ProviderError,
    ValidationFailed,
)
from ..storage import StorageManager
from ..utils.dates import utcnow
from ..utils.logger import setup_logger
from .auth import RequestTrackingMiddleware, general_limit, redis_client
from .dependencies import get_storage
from .routes import admin_router, auth_router, content_router, subscription_router, user_router
from .schemas import ErrorResponse, HealthCheckResponse

logger = setup_logger(__name__)

# Initialize Sentry for error tracking (optional)
if os.getenv("SENTRY_DSN"):
    sentry_sdk.init(
        dsn=os.getenv("SENTRY_DSN"),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        environment=os.getenv("ENVIRONMENT", "production"),
    )

# Create FastAPI app
app = FastAPI(
    title="LurkingPods API",
    description="Daily AI-generated two-speaker podcasts by category and language",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    dependencies=[Depends(general_limit)],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    }
)

# Add middleware
app.add_middleware(RequestTrackingMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)

# Add Prometheus metrics
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

app.include_router(auth_router)
app.include_router(content_router)
app.include_router(subscription_router)
app.include_router(user_router)
app.include_router(admin_router)

ERROR_STATUS_CODES = {
    ValidationFailed: 400,
    AuthenticationFailed: 401,
    AccessDenied: 403,
    EntityNotFound: 404,
    InvalidStatusTransition: 409,
    JobNotRetryable: 409,
    ConflictError: 409,
    ProviderError: 502,
}


def error_status_code(exc: LurkingPodsError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 500


def error_detail(exc: LurkingPodsError) -> Optional[Dict[str, Any]]:
    """Structured fields of a domain error that are safe to return."""
    if isinstance(exc, ValidationFailed):
        return {"field": exc.field, "rule": exc.rule}
    if isinstance(exc, InvalidStatusTransition):
        return {"current": exc.current, "target": exc.target}
    if isinstance(exc, JobNotRetryable):
        return {
            "job_id": exc.job_id,
            "status": exc.status,
            "retry_count": exc.retry_count,
            "max_retries": exc.max_retries,
        }
    if isinstance(exc, EntityNotFound):
        return {"entity": exc.entity, "id": exc.entity_id}
    if isinstance(exc, AccessDenied) and exc.reason:
        return {"reason": exc.reason}
    if isinstance(exc, ProviderError):
        return {"stage": exc.stage}
    return None


@app.exception_handler(LurkingPodsError)
async def domain_exception_handler(request: Request, exc: LurkingPodsError):
    """Map domain errors to HTTP responses."""
    status_code = error_status_code(exc)
    if status_code >= 500:
        # Provider details stay in the logs
        logger.error(f"{type(exc).__name__}: {exc.message}")
        message = "An upstream service failed"
    else:
        message = exc.message

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            message=message,
            detail=error_detail(exc),
            request_id=getattr(request.state, "request_id", None)
        ).model_dump(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with detailed messages."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="ValidationError",
            message="Invalid request parameters",
            detail={"errors": errors},
            request_id=getattr(request.state, "request_id", None)
        ).model_dump()
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.__class__.__name__,
            message=str(exc.detail),
            request_id=getattr(request.state, "request_id", None)
        ).model_dump(),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="InternalServerError",
            message="An unexpected error occurred",
            request_id=getattr(request.state, "request_id", None)
        ).model_dump()
    )


@app.get("/", response_model=Dict[str, Any])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "LurkingPods API",
        "version": __version__,
        "status": "operational",
        "documentation": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=HealthCheckResponse)
async def health_check(storage: StorageManager = Depends(get_storage)):
    """
    Health check endpoint for monitoring.

    Returns service status and dependency health.
    """
    db_healthy = DatabaseManager.health_check()

    redis_healthy = True
    try:
        redis_client.ping()
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {str(e)}")
        redis_healthy = False

    storage_healthy = storage.health_check()

    all_healthy = db_healthy and redis_healthy and storage_healthy

    return HealthCheckResponse(
        status="healthy" if all_healthy else "degraded",
        version=__version__,
        timestamp=utcnow(),
        services={
            "database": db_healthy,
            "redis": redis_healthy,
            "storage": storage_healthy
        }
    )


def main():
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    workers = int(os.getenv("WORKERS", 4))

    uvicorn.run(
        "lurkingpods.api.app:app",
        host=host,
        port=port,
        workers=workers,
        reload=False,
        log_config={
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                },
            },
            "handlers": {
                "default": {
                    "formatter": "default",
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": os.getenv("LOG_LEVEL", "INFO"),
                "handlers": ["default"],
            },
        }
    )


if __name__ == "__main__":
    main()
