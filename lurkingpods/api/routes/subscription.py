"""Store purchases and subscription status."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...models import User
from ...services import SubscriptionService
from ..auth import get_current_user, subscription_limit
from ..dependencies import get_subscription_service
from ..schemas import (
    CancelSubscriptionResponse,
    SubscriptionResponse,
    SubscriptionStatusResponse,
    VerifyReceiptRequest,
)
from .auth import subscription_summary

router = APIRouter(prefix="/subscription", tags=["subscription"], dependencies=[Depends(subscription_limit)])


@router.get("/status", response_model=SubscriptionStatusResponse)
async def subscription_status(
    user: User = Depends(get_current_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    return subscription_summary(subscriptions, user.id)


@router.post("/verify", response_model=SubscriptionResponse)
async def verify_receipt(
    request: VerifyReceiptRequest,
    user: User = Depends(get_current_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    """Verify an App Store or Google Play receipt and activate the subscription."""
    subscription = subscriptions.verify_and_subscribe(user.id, request.platform, request.receipt_data)
    return SubscriptionResponse.model_validate(subscription)


@router.post("/cancel", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    user: User = Depends(get_current_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    return CancelSubscriptionResponse.model_validate(subscriptions.cancel(user.id))


@router.get("/prices", response_model=Dict[str, Dict[str, Any]])
async def subscription_prices():
    return SubscriptionService.prices()
