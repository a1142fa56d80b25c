"""Domain models for the billing dashboard."""

from .activity import ActivityAction, UserActivity
from .payment import Payment, PaymentStatus
from .plan import Plan
from .subscription import Subscription, SubscriptionStatus
from .user import User
from .webhook_event import WebhookEventRecord

__all__ = [
    "ActivityAction",
    "Payment",
    "PaymentStatus",
    "Plan",
    "Subscription",
    "SubscriptionStatus",
    "User",
    "UserActivity",
    "WebhookEventRecord",
]
