"""Stripe payment integration gateway."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import stripe

from ..domain.errors import PaymentProcessorError, ValidationError

logger = logging.getLogger(__name__)


class StripeGateway:
    """Outbound Stripe calls used by the subscription commands.

    Every call is a single synchronous request. Failures are surfaced as
    ``PaymentProcessorError`` and never retried here. Subscription calls
    return plain dicts so callers never depend on SDK object types.
    """

    # Last API version whose invoices still carry ``payment_intent``.
    API_VERSION = "2024-06-20"

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise RuntimeError("STRIPE_SECRET_KEY is not configured.")
        stripe.api_key = secret_key
        stripe.api_version = self.API_VERSION

    # Customers -------------------------------------------------------------
    def create_customer(self, email: str, name: str, user_id: int) -> str:
        """Create a Stripe customer tagged with the local user id and return its id."""
        try:
            customer = stripe.Customer.create(
                email=email,
                name=name or None,
                metadata={"user_id": str(user_id)},
            )
        except stripe.StripeError as exc:
            raise self._wrap(exc, "create_customer", f"user:{user_id}") from exc
        logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
        return customer.id

    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        try:
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
        except stripe.StripeError as exc:
            raise self._wrap(exc, "attach_payment_method", f"customer:{customer_id}") from exc

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        try:
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )
        except stripe.StripeError as exc:
            raise self._wrap(exc, "set_default_payment_method", f"customer:{customer_id}") from exc

    # Subscriptions ---------------------------------------------------------
    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Create a subscription for one unit of ``price_id``.

        Returns the Stripe subscription object with ``latest_invoice.payment_intent``
        expanded so the caller can hand the client secret to the frontend.
        """
        try:
            subscription = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id, "quantity": 1}],
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=["latest_invoice.payment_intent"],
                metadata=metadata or {},
            )
        except stripe.StripeError as exc:
            raise self._wrap(exc, "create_subscription", f"customer:{customer_id}") from exc
        return subscription.to_dict()

    def update_subscription(self, subscription_id: str, cancel_at_period_end: bool) -> Dict[str, Any]:
        """Schedule or clear cancellation at the end of the current period."""
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=cancel_at_period_end,
            )
        except stripe.StripeError as exc:
            raise self._wrap(exc, "update_subscription", f"subscription:{subscription_id}") from exc
        return subscription.to_dict()

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Cancel immediately."""
        try:
            subscription = stripe.Subscription.cancel(subscription_id)
        except stripe.StripeError as exc:
            raise self._wrap(exc, "cancel_subscription", f"subscription:{subscription_id}") from exc
        return subscription.to_dict()

    # Webhooks --------------------------------------------------------------
    @staticmethod
    def verify_webhook(payload: bytes, signature: str, webhook_secret: str) -> Dict[str, Any]:
        """Check the ``Stripe-Signature`` header and return the decoded event envelope."""
        if not signature:
            raise ValidationError("Missing Stripe-Signature header", operation="verify_webhook")
        try:
            stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise ValidationError("Invalid webhook signature", operation="verify_webhook") from exc
        except ValueError as exc:
            raise ValidationError("Webhook payload is not valid JSON", operation="verify_webhook") from exc
        envelope = json.loads(payload)
        if not isinstance(envelope, dict):
            raise ValidationError("Webhook payload is not an event object", operation="verify_webhook")
        return envelope

    @staticmethod
    def _wrap(exc: stripe.StripeError, operation: str, entity: str) -> PaymentProcessorError:
        message = getattr(exc, "user_message", None) or str(exc) or exc.__class__.__name__
        logger.error("Stripe %s failed for %s: %s", operation, entity, message)
        return PaymentProcessorError(message, entity=entity, operation=operation)
