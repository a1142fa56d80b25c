"""API router for subscription lifecycle commands."""

from typing import Optional

from fastapi import APIRouter, Depends, status

from ....core.dependencies import get_subscription_service
from ....domain.errors import BillingError
from ....domain.models import User
from ....services.subscription_service import SubscriptionCommandResult, SubscriptionLifecycleService
from ..dependencies import get_current_user
from ..errors import to_http_exception
from ..schemas.subscription_schemas import (
    CancelSubscriptionRequest,
    CreateSubscriptionRequest,
    SubscriptionCommandResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("", response_model=SubscriptionListResponse)
def list_subscriptions(
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionListResponse:
    """Get the current user's subscriptions, newest first."""
    subscriptions = subscription_service.list_for_user(current_user)
    return SubscriptionListResponse(
        items=[SubscriptionResponse.from_domain(item) for item in subscriptions],
        count=len(subscriptions),
    )


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: int,
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    try:
        subscription = subscription_service.get_for_user(current_user, subscription_id)
    except BillingError as exc:
        raise to_http_exception(exc) from exc
    return SubscriptionResponse.from_domain(subscription)


@router.post("", response_model=SubscriptionCommandResponse, status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: CreateSubscriptionRequest,
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionCommandResponse:
    """Subscribe the current user to a plan."""
    try:
        result = subscription_service.create(
            current_user,
            payload.plan_id,
            payment_method_id=payload.payment_method_id,
        )
    except BillingError as exc:
        raise to_http_exception(exc) from exc
    return _command_response(result)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionCommandResponse)
def cancel_subscription(
    subscription_id: int,
    payload: Optional[CancelSubscriptionRequest] = None,
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionCommandResponse:
    """Cancel a subscription, at period end unless told otherwise."""
    cancel_at_period_end = payload.cancel_at_period_end if payload else True
    try:
        result = subscription_service.cancel(
            current_user,
            subscription_id,
            cancel_at_period_end=cancel_at_period_end,
        )
    except BillingError as exc:
        raise to_http_exception(exc) from exc
    return _command_response(result)


@router.post("/{subscription_id}/reactivate", response_model=SubscriptionCommandResponse)
def reactivate_subscription(
    subscription_id: int,
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionCommandResponse:
    """Undo a scheduled cancellation."""
    try:
        result = subscription_service.reactivate(current_user, subscription_id)
    except BillingError as exc:
        raise to_http_exception(exc) from exc
    return _command_response(result)


def _command_response(result: SubscriptionCommandResult) -> SubscriptionCommandResponse:
    return SubscriptionCommandResponse(
        subscription=SubscriptionResponse.from_domain(result.subscription),
        client_secret=result.client_secret,
    )
