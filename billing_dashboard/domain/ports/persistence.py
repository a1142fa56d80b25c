from __future__ import annotations

from datetime import datetime
from typing import Any, ContextManager, Dict, List, Optional, Protocol

from ..models import (
    Payment,
    PaymentStatus,
    Plan,
    Subscription,
    SubscriptionStatus,
    User,
    UserActivity,
    WebhookEventRecord,
)


class DuplicateRecordError(Exception):
    """Raised when an insert collides with a UNIQUE external reference."""


class TransactionManager(Protocol):
    """Groups several writes into one all-or-nothing unit of work."""

    def transaction(self) -> ContextManager[Any]:
        ...


class UserRepository(Protocol):
    """Persistence functions related to dashboard users."""

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        ...

    def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    def create_user(
        self,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
    ) -> User:
        ...

    def set_user_customer_id(self, user_id: int, stripe_customer_id: str) -> User:
        ...


class PlanRepository(Protocol):
    """Storage for the plan catalogue."""

    def get_plan(self, plan_id: int) -> Optional[Plan]:
        ...

    def list_plans(self, active_only: bool = True) -> List[Plan]:
        ...

    def create_plan(
        self,
        name: str,
        stripe_price_id: str,
        stripe_product_id: str,
        amount: int,
        currency: str,
        interval: str,
        interval_count: int = 1,
        features: Optional[List[str]] = None,
    ) -> Plan:
        ...


class SubscriptionRepository(Protocol):
    """Storage for mirrored Stripe subscriptions."""

    def create_subscription(
        self,
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
    ) -> Subscription:
        ...

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        ...

    def get_subscription_for_user(self, subscription_id: int, user_id: int) -> Optional[Subscription]:
        ...

    def get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        ...

    def list_subscriptions_for_user(self, user_id: int) -> List[Subscription]:
        ...

    def update_subscription_state(
        self,
        subscription_id: int,
        *,
        status: SubscriptionStatus,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool,
        canceled_at: Optional[datetime],
        trial_start: Optional[datetime],
        trial_end: Optional[datetime],
    ) -> Subscription:
        ...


class PaymentRepository(Protocol):
    """Append-only storage for payment attempts."""

    def create_payment(
        self,
        user_id: int,
        subscription_id: Optional[int],
        stripe_payment_id: str,
        amount: int,
        currency: str,
        status: PaymentStatus,
        description: Optional[str],
        receipt_url: Optional[str],
    ) -> Payment:
        ...

    def get_payment_by_stripe_id(self, stripe_payment_id: str) -> Optional[Payment]:
        ...

    def get_payment_for_user(self, payment_id: int, user_id: int) -> Optional[Payment]:
        ...

    def list_payments_for_user(
        self,
        user_id: int,
        *,
        status: Optional[PaymentStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[Payment]:
        ...

    def count_payments_for_user(self, user_id: int, status: Optional[PaymentStatus] = None) -> int:
        ...


class ActivityRepository(Protocol):
    """Append-only audit trail storage."""

    def create_activity(
        self,
        user_id: int,
        action: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UserActivity:
        ...

    def list_activities_for_user(self, user_id: int, limit: int, offset: int = 0) -> List[UserActivity]:
        ...

    def count_activities_for_user(self, user_id: int) -> int:
        ...


class WebhookEventRepository(Protocol):
    """Delivery log of verified Stripe events."""

    def record_webhook_event(
        self,
        event_id: str,
        event_type: str,
        outcome: str,
        error: Optional[str],
        received_at: str,
    ) -> WebhookEventRecord:
        ...

    def get_webhook_event(self, event_id: str) -> Optional[WebhookEventRecord]:
        ...


class PersistenceGateway(
    TransactionManager,
    UserRepository,
    PlanRepository,
    SubscriptionRepository,
    PaymentRepository,
    ActivityRepository,
    WebhookEventRepository,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    def close(self) -> None:
        ...
