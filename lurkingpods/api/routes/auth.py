"""Registration, login and the current user."""

from datetime import timedelta

from fastapi import APIRouter, Depends, status

from ...models import User
from ...services import SubscriptionService, UserService
from ...utils.dates import utcnow
from ...utils.logger import setup_logger
from ..auth import auth_limit, get_current_user
from ..dependencies import get_subscription_service, get_user_service
from ..schemas import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
    SessionInfo,
    SubscriptionStatusResponse,
    TrialInfo,
    UserDetailResponse,
    UserResponse,
)

logger = setup_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

SESSION_LIFETIME = timedelta(hours=24)


def _auth_response(user: User, users: UserService) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.model_validate(user),
        session=SessionInfo(
            access_token=user.id,
            user_id=user.id,
            expires_at=utcnow() + SESSION_LIFETIME,
        ),
        trial_info=TrialInfo(**users.access(user)),
    )


def subscription_summary(subscriptions: SubscriptionService, user_id: str) -> SubscriptionStatusResponse:
    summary = subscriptions.status(user_id)
    return SubscriptionStatusResponse(
        status="active" if summary["is_subscribed"] else "inactive",
        **summary,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(auth_limit)])
async def register(request: RegisterRequest, users: UserService = Depends(get_user_service)):
    """Create an account with a 2-day free trial."""
    user = users.register(request.email, request.password, request.language_preference)
    return _auth_response(user, users)


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(auth_limit)])
async def login(request: LoginRequest, users: UserService = Depends(get_user_service)):
    user = users.authenticate(request.email, request.password)
    logger.info(f"User {user.id} logged in")
    return _auth_response(user, users)


@router.get("/me", response_model=MeResponse)
async def me(
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    return MeResponse(
        user=UserDetailResponse.model_validate(user),
        trial_info=TrialInfo(**users.access(user)),
        subscription=subscription_summary(subscriptions, user.id),
    )
