"""Single write path for mirrored subscription and payment state."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..domain.errors import NotFoundError
from ..domain.events import PaymentOutcome, SubscriptionSnapshot
from ..domain.models import ActivityAction, Payment, PaymentStatus, Subscription, SubscriptionStatus
from ..domain.ports.persistence import DuplicateRecordError, PersistenceGateway

logger = logging.getLogger(__name__)


class BillingStateWriter:
    """Applies normalized records and command results to storage.

    Webhook deliveries and user commands both end here so the two paths
    cannot diverge. Payment rows are keyed by their Stripe reference, which is
    UNIQUE in storage, so redelivered events produce at most one row.
    """

    def __init__(self, persistence: PersistenceGateway) -> None:
        self._persistence = persistence

    # Webhook-driven writes ------------------------------------------------
    def apply_subscription_snapshot(self, snapshot: SubscriptionSnapshot) -> Optional[Subscription]:
        with self._persistence.transaction():
            current = self._persistence.get_subscription_by_stripe_id(snapshot.stripe_subscription_id)
            if current is None:
                self._report_unknown_subscription(snapshot)
                return None
            # Stripe is the source of truth for these fields: last arrival wins.
            updated = self._persistence.update_subscription_state(
                current.id,
                status=snapshot.status,
                current_period_start=snapshot.current_period_start,
                current_period_end=snapshot.current_period_end,
                cancel_at_period_end=snapshot.cancel_at_period_end,
                canceled_at=snapshot.canceled_at,
                trial_start=snapshot.trial_start,
                trial_end=snapshot.trial_end,
            )
        logger.info(
            "Subscription %s synced from Stripe: %s -> %s",
            snapshot.stripe_subscription_id,
            current.status.value,
            updated.status.value,
        )
        return updated

    def apply_payment_outcome(self, outcome: PaymentOutcome) -> Optional[Payment]:
        try:
            with self._persistence.transaction():
                if self._persistence.get_payment_by_stripe_id(outcome.stripe_payment_id):
                    logger.info("Payment %s already recorded; skipping", outcome.stripe_payment_id)
                    return None
                if not outcome.stripe_subscription_id:
                    logger.warning(
                        "Payment %s has no subscription reference; not recorded",
                        outcome.stripe_payment_id,
                    )
                    return None
                subscription = self._persistence.get_subscription_by_stripe_id(
                    outcome.stripe_subscription_id
                )
                if subscription is None:
                    logger.warning(
                        "Payment %s references unknown subscription %s; not recorded",
                        outcome.stripe_payment_id,
                        outcome.stripe_subscription_id,
                    )
                    return None

                payment = self._persistence.create_payment(
                    user_id=subscription.user_id,
                    subscription_id=subscription.id,
                    stripe_payment_id=outcome.stripe_payment_id,
                    amount=outcome.amount,
                    currency=outcome.currency,
                    status=outcome.status,
                    description=outcome.description,
                    receipt_url=outcome.receipt_url,
                )
                succeeded = outcome.status == PaymentStatus.SUCCEEDED
                action = ActivityAction.PAYMENT_SUCCEEDED if succeeded else ActivityAction.PAYMENT_FAILED
                verb = "succeeded" if succeeded else "failed"
                self._persistence.create_activity(
                    subscription.user_id,
                    action.value,
                    f"Payment {verb} for amount: {outcome.amount / 100:.2f} {outcome.currency.upper()}",
                    {
                        "paymentId": outcome.stripe_payment_id,
                        "amount": outcome.amount,
                        "currency": outcome.currency,
                    },
                )
        except DuplicateRecordError:
            # A concurrent delivery inserted the same reference first.
            logger.info("Payment %s recorded by a concurrent delivery", outcome.stripe_payment_id)
            return None

        log = logger.info if succeeded else logger.warning
        log(
            "Payment %s %s for user %s: %s %s",
            outcome.stripe_payment_id,
            verb,
            subscription.user_id,
            outcome.amount,
            outcome.currency,
        )
        return payment

    # Command-driven writes ------------------------------------------------
    def record_created_subscription(
        self,
        user_id: int,
        plan_id: Optional[int],
        snapshot: SubscriptionSnapshot,
    ) -> Subscription:
        try:
            return self._persistence.create_subscription(
                user_id=user_id,
                plan_id=plan_id,
                stripe_subscription_id=snapshot.stripe_subscription_id,
                stripe_customer_id=snapshot.stripe_customer_id,
                price_id=snapshot.price_id,
                status=snapshot.status,
                current_period_start=snapshot.current_period_start,
                current_period_end=snapshot.current_period_end,
                cancel_at_period_end=snapshot.cancel_at_period_end,
                canceled_at=snapshot.canceled_at,
                trial_start=snapshot.trial_start,
                trial_end=snapshot.trial_end,
            )
        except DuplicateRecordError:
            existing = self._persistence.get_subscription_by_stripe_id(snapshot.stripe_subscription_id)
            if existing is not None and existing.user_id == user_id:
                return existing
            raise

    def apply_cancellation(
        self,
        subscription: Subscription,
        *,
        at_period_end: bool,
        canceled_at: datetime,
    ) -> Subscription:
        with self._persistence.transaction():
            current = self._reload(subscription, "apply_cancellation")
            if at_period_end:
                # Status moves to CANCELED later, when Stripe reports the period has ended.
                status = current.status
            else:
                status = SubscriptionStatus.CANCELED
            return self._persistence.update_subscription_state(
                current.id,
                status=status,
                current_period_start=current.current_period_start,
                current_period_end=current.current_period_end,
                cancel_at_period_end=at_period_end,
                canceled_at=canceled_at,
                trial_start=current.trial_start,
                trial_end=current.trial_end,
            )

    def apply_reactivation(self, subscription: Subscription) -> Subscription:
        with self._persistence.transaction():
            current = self._reload(subscription, "apply_reactivation")
            return self._persistence.update_subscription_state(
                current.id,
                status=current.status,
                current_period_start=current.current_period_start,
                current_period_end=current.current_period_end,
                cancel_at_period_end=False,
                canceled_at=None,
                trial_start=current.trial_start,
                trial_end=current.trial_end,
            )

    # Helpers ----------------------------------------------------------------
    def _reload(self, subscription: Subscription, operation: str) -> Subscription:
        current = self._persistence.get_subscription(subscription.id)
        if current is None:
            raise NotFoundError(
                "Subscription not found",
                entity=f"subscription:{subscription.id}",
                operation=operation,
            )
        return current

    @staticmethod
    def _report_unknown_subscription(snapshot: SubscriptionSnapshot) -> None:
        owner = snapshot.metadata.get("user_id")
        if owner:
            # Created through this service but never persisted locally.
            logger.error(
                "Reconciliation gap: Stripe subscription %s for user %s has no local record",
                snapshot.stripe_subscription_id,
                owner,
            )
        else:
            logger.info(
                "Ignoring snapshot for unknown subscription %s", snapshot.stripe_subscription_id
            )
