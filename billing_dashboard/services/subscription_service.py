"""User-initiated subscription commands: create, cancel, reactivate."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional

from ..domain.errors import InvalidStateError, NotFoundError, ReconciliationGap
from ..domain.models import ActivityAction, Subscription, SubscriptionStatus, User
from ..domain.ports.persistence import PersistenceGateway
from .activity_service import ActivityLogger
from .event_normalizer import BillingEventNormalizer
from .state_writer import BillingStateWriter
from .stripe_service import StripeGateway

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubscriptionCommandResult:
    subscription: Subscription
    client_secret: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionLifecycleService:
    """Two-phase subscription commands: call Stripe, then reconcile local state.

    A Stripe failure aborts the command before anything is written. A local
    failure after Stripe accepted the change is logged as a reconciliation gap
    and raised as ``ReconciliationGap``.
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        gateway: StripeGateway,
        writer: BillingStateWriter,
        normalizer: BillingEventNormalizer,
        activity_logger: ActivityLogger,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._persistence = persistence
        self._gateway = gateway
        self._writer = writer
        self._normalizer = normalizer
        self._activity = activity_logger
        self._clock = clock

    # Queries ---------------------------------------------------------------
    def list_for_user(self, user: User) -> List[Subscription]:
        return self._persistence.list_subscriptions_for_user(user.id)

    def get_for_user(self, user: User, subscription_id: int) -> Subscription:
        return self._owned(user, subscription_id, "get_subscription")

    # Commands --------------------------------------------------------------
    def create(
        self,
        user: User,
        plan_id: int,
        payment_method_id: Optional[str] = None,
    ) -> SubscriptionCommandResult:
        """
        Subscribe the user to a plan.

        Args:
            user: Subscribing user
            plan_id: Local plan identifier
            payment_method_id: Stripe payment method to attach and make default

        Returns:
            The persisted subscription and the first invoice's client secret

        Raises:
            NotFoundError: Plan missing or inactive
            PaymentProcessorError: Any Stripe call failed
            ReconciliationGap: Stripe created the subscription but it was not stored
        """
        plan = self._persistence.get_plan(plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundError("Plan not found", entity=f"plan:{plan_id}", operation="create_subscription")

        customer_id = self._ensure_customer(user)
        if payment_method_id:
            self._gateway.attach_payment_method(payment_method_id, customer_id)
            self._gateway.set_default_payment_method(customer_id, payment_method_id)

        remote = self._gateway.create_subscription(
            customer_id,
            plan.stripe_price_id,
            metadata={"user_id": str(user.id), "plan_id": str(plan.id)},
        )
        remote_id = remote.get("id") if isinstance(remote, Mapping) else None

        try:
            snapshot = self._normalizer.snapshot_from_subscription(remote)
            subscription = self._writer.record_created_subscription(user.id, plan.id, snapshot)
        except Exception as exc:
            raise self._gap("create_subscription", remote_id, user, exc) from exc

        self._activity.record(
            user.id,
            ActivityAction.SUBSCRIPTION_CREATED,
            f"Created subscription for plan: {plan.name}",
            {"subscriptionId": subscription.id, "planId": plan.id},
        )
        logger.info(
            "Subscription created: user=%s subscription=%s plan=%s",
            user.id,
            subscription.id,
            plan.id,
        )
        return SubscriptionCommandResult(subscription, _client_secret(remote))

    def cancel(
        self,
        user: User,
        subscription_id: int,
        cancel_at_period_end: bool = True,
    ) -> SubscriptionCommandResult:
        subscription = self._owned(user, subscription_id, "cancel_subscription")
        if subscription.status == SubscriptionStatus.CANCELED:
            raise InvalidStateError(
                "Subscription is already canceled",
                entity=f"subscription:{subscription.id}",
                operation="cancel_subscription",
            )

        if cancel_at_period_end:
            self._gateway.update_subscription(subscription.stripe_subscription_id, True)
        else:
            self._gateway.cancel_subscription(subscription.stripe_subscription_id)

        try:
            updated = self._writer.apply_cancellation(
                subscription,
                at_period_end=cancel_at_period_end,
                canceled_at=self._clock(),
            )
        except Exception as exc:
            raise self._gap("cancel_subscription", subscription.stripe_subscription_id, user, exc) from exc

        self._activity.record(
            user.id,
            ActivityAction.SUBSCRIPTION_CANCELED,
            f"Canceled subscription: {subscription.id}",
            {"subscriptionId": subscription.id, "cancelAtPeriodEnd": cancel_at_period_end},
        )
        logger.info(
            "Subscription canceled: user=%s subscription=%s at_period_end=%s",
            user.id,
            subscription.id,
            cancel_at_period_end,
        )
        return SubscriptionCommandResult(updated)

    def reactivate(self, user: User, subscription_id: int) -> SubscriptionCommandResult:
        subscription = self._owned(user, subscription_id, "reactivate_subscription")
        if subscription.status == SubscriptionStatus.CANCELED:
            raise InvalidStateError(
                "Canceled subscriptions cannot be reactivated",
                entity=f"subscription:{subscription.id}",
                operation="reactivate_subscription",
            )
        if not subscription.is_cancellation_scheduled():
            raise InvalidStateError(
                "Subscription has no scheduled cancellation",
                entity=f"subscription:{subscription.id}",
                operation="reactivate_subscription",
            )

        self._gateway.update_subscription(subscription.stripe_subscription_id, False)

        try:
            updated = self._writer.apply_reactivation(subscription)
        except Exception as exc:
            raise self._gap("reactivate_subscription", subscription.stripe_subscription_id, user, exc) from exc

        self._activity.record(
            user.id,
            ActivityAction.SUBSCRIPTION_REACTIVATED,
            f"Reactivated subscription: {subscription.id}",
            {"subscriptionId": subscription.id},
        )
        logger.info("Subscription reactivated: user=%s subscription=%s", user.id, subscription.id)
        return SubscriptionCommandResult(updated)

    # Helpers ----------------------------------------------------------------
    def _owned(self, user: User, subscription_id: int, operation: str) -> Subscription:
        subscription = self._persistence.get_subscription_for_user(subscription_id, user.id)
        if subscription is None:
            raise NotFoundError(
                "Subscription not found",
                entity=f"subscription:{subscription_id}",
                operation=operation,
            )
        return subscription

    def _ensure_customer(self, user: User) -> str:
        if user.stripe_customer_id:
            return user.stripe_customer_id
        customer_id = self._gateway.create_customer(user.email, user.full_name, user.id)
        try:
            self._persistence.set_user_customer_id(user.id, customer_id)
        except Exception as exc:
            raise self._gap("link_customer", customer_id, user, exc) from exc
        user.stripe_customer_id = customer_id
        return customer_id

    @staticmethod
    def _gap(operation: str, external_ref: Optional[str], user: User, exc: Exception) -> ReconciliationGap:
        logger.error(
            "Reconciliation gap: %s succeeded in Stripe (%s) but local write failed for user %s: %s",
            operation,
            external_ref,
            user.id,
            exc,
            exc_info=exc,
        )
        return ReconciliationGap(
            "Stripe accepted the change but it could not be saved locally",
            external_ref=external_ref,
            entity=f"user:{user.id}",
            operation=operation,
        )


def _client_secret(remote: Any) -> Optional[str]:
    if not isinstance(remote, Mapping):
        return None
    invoice = remote.get("latest_invoice")
    if not isinstance(invoice, Mapping):
        return None
    intent = invoice.get("payment_intent")
    if not isinstance(intent, Mapping):
        return None
    secret = intent.get("client_secret")
    return secret if isinstance(secret, str) else None
