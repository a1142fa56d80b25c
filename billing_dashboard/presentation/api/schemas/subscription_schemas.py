"""Pydantic schemas for subscription API endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ....domain.models import Subscription


class CreateSubscriptionRequest(BaseModel):
    """Request schema for subscribing to a plan."""

    plan_id: int
    payment_method_id: Optional[str] = Field(None, description="Stripe payment method to attach as default")


class CancelSubscriptionRequest(BaseModel):
    """Request schema for canceling a subscription."""

    cancel_at_period_end: bool = Field(default=True, description="Whether to cancel at the end of the billing period")


class SubscriptionResponse(BaseModel):
    """Response schema for subscription data."""

    id: int
    plan_id: Optional[int]
    stripe_subscription_id: str
    price_id: Optional[str]
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    canceled_at: Optional[datetime]
    trial_start: Optional[datetime]
    trial_end: Optional[datetime]
    is_active: bool
    created_at: Optional[datetime]

    @classmethod
    def from_domain(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            plan_id=subscription.plan_id,
            stripe_subscription_id=subscription.stripe_subscription_id,
            price_id=subscription.price_id,
            status=subscription.status.value,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
            canceled_at=subscription.canceled_at,
            trial_start=subscription.trial_start,
            trial_end=subscription.trial_end,
            is_active=subscription.is_active(),
            created_at=subscription.created_at,
        )


class SubscriptionCommandResponse(BaseModel):
    """Response schema for create/cancel/reactivate commands."""

    success: bool = True
    subscription: SubscriptionResponse
    client_secret: Optional[str] = None


class SubscriptionListResponse(BaseModel):
    items: List[SubscriptionResponse]
    count: int
