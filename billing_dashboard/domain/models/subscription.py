"""Subscription domain model mirroring a Stripe subscription."""

from datetime import datetime
from enum import Enum
from typing import Optional


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TRIALING = "TRIALING"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    INCOMPLETE = "INCOMPLETE"
    INCOMPLETE_EXPIRED = "INCOMPLETE_EXPIRED"
    UNPAID = "UNPAID"

    @classmethod
    def from_stripe(cls, value: str) -> "SubscriptionStatus":
        """Map Stripe's lowercase status string onto the local enum."""
        return cls(value.strip().upper())


class Subscription:
    """
    Subscription entity representing a user's recurring billing arrangement.

    Attributes:
        id: Unique identifier
        user_id: Reference to User
        plan_id: Reference to Plan (None when created outside a known plan)
        stripe_subscription_id: Stripe subscription ID (unique)
        stripe_customer_id: Stripe customer ID
        price_id: Stripe price ID
        status: Subscription status
        current_period_start: Start of current billing period
        current_period_end: End of current billing period
        cancel_at_period_end: Whether subscription will cancel at period end
        canceled_at: When cancellation was requested or took effect
        trial_start: Trial window start
        trial_end: Trial window end
        created_at: Subscription creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: int,
        user_id: int,
        plan_id: Optional[int],
        stripe_subscription_id: str,
        stripe_customer_id: Optional[str],
        price_id: Optional[str],
        status: SubscriptionStatus,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool = False,
        canceled_at: Optional[datetime] = None,
        trial_start: Optional[datetime] = None,
        trial_end: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.user_id = user_id
        self.plan_id = plan_id
        self.stripe_subscription_id = stripe_subscription_id
        self.stripe_customer_id = stripe_customer_id
        self.price_id = price_id
        self.status = status
        self.current_period_start = current_period_start
        self.current_period_end = current_period_end
        self.cancel_at_period_end = cancel_at_period_end
        self.canceled_at = canceled_at
        self.trial_start = trial_start
        self.trial_end = trial_end
        self.created_at = created_at
        self.updated_at = updated_at

    def is_active(self) -> bool:
        """Check if subscription is currently active."""
        return self.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)

    def is_cancellation_scheduled(self) -> bool:
        """True while cancellation is requested but the period has not ended."""
        return self.cancel_at_period_end and self.status != SubscriptionStatus.CANCELED

    def __repr__(self) -> str:
        return (
            f"<Subscription id={self.id} user_id={self.user_id} "
            f"ref={self.stripe_subscription_id} status={self.status.value}>"
        )
