"""Maps verified Stripe events onto the service's normalized billing records."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from ..domain.errors import ValidationError
from ..domain.events import (
    IgnoredEvent,
    NormalizedRecord,
    PaymentOutcome,
    RawEvent,
    SubscriptionSnapshot,
)
from ..domain.models import PaymentStatus, SubscriptionStatus


class BillingEventNormalizer:
    """Pure transformation from a Stripe event envelope to a normalized record.

    Event types outside the handler table become ``IgnoredEvent``. A tracked
    event whose payload lacks a required field raises ``ValidationError``.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, Callable[[RawEvent], NormalizedRecord]] = {
            "customer.subscription.created": self._subscription_changed,
            "customer.subscription.updated": self._subscription_changed,
            "customer.subscription.deleted": self._subscription_deleted,
            "invoice.payment_succeeded": self._payment_succeeded,
            "invoice.payment_failed": self._payment_failed,
        }

    def normalize(self, event: RawEvent) -> NormalizedRecord:
        handler = self._handlers.get(event.event_type)
        if handler is None:
            return IgnoredEvent(event_type=event.event_type)
        return handler(event)

    # Subscriptions ---------------------------------------------------------
    def snapshot_from_subscription(self, obj: Mapping[str, Any]) -> SubscriptionSnapshot:
        """Build a snapshot from a Stripe subscription object (webhook or API response)."""
        subscription_id = _require_str(obj, "id", "subscription")
        raw_status = _require_str(obj, "status", subscription_id)
        try:
            status = SubscriptionStatus.from_stripe(raw_status)
        except ValueError as exc:
            raise ValidationError(
                f"Unsupported subscription status '{raw_status}'",
                entity=f"subscription:{subscription_id}",
                operation="normalize",
            ) from exc

        period_source = _period_source(obj)
        period_start = _timestamp(period_source, "current_period_start", subscription_id)
        period_end = _timestamp(period_source, "current_period_end", subscription_id)
        if period_end <= period_start:
            raise ValidationError(
                "current_period_end must be after current_period_start",
                entity=f"subscription:{subscription_id}",
                operation="normalize",
            )

        cancel_flag = obj.get("cancel_at_period_end", False)
        if cancel_flag is None:
            cancel_flag = False
        if not isinstance(cancel_flag, bool):
            raise ValidationError(
                "cancel_at_period_end must be a boolean",
                entity=f"subscription:{subscription_id}",
                operation="normalize",
            )

        metadata = obj.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            raise ValidationError(
                "metadata must be an object",
                entity=f"subscription:{subscription_id}",
                operation="normalize",
            )
        return SubscriptionSnapshot(
            stripe_subscription_id=subscription_id,
            status=status,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=cancel_flag,
            canceled_at=_optional_timestamp(obj, "canceled_at", subscription_id),
            trial_start=_optional_timestamp(obj, "trial_start", subscription_id),
            trial_end=_optional_timestamp(obj, "trial_end", subscription_id),
            stripe_customer_id=_reference(obj.get("customer")),
            price_id=_first_price_id(obj),
            metadata={str(key): str(value) for key, value in metadata.items()},
        )

    def _subscription_changed(self, event: RawEvent) -> SubscriptionSnapshot:
        return self.snapshot_from_subscription(event.payload)

    def _subscription_deleted(self, event: RawEvent) -> SubscriptionSnapshot:
        snapshot = self.snapshot_from_subscription(event.payload)
        context = snapshot.stripe_subscription_id
        canceled_at = snapshot.canceled_at or _optional_timestamp(event.payload, "ended_at", context)
        if canceled_at is None and event.created is not None:
            canceled_at = _from_epoch(event.created, "created", context)
        if canceled_at is None:
            raise ValidationError(
                "Deleted subscription carries no cancellation time",
                entity=f"subscription:{snapshot.stripe_subscription_id}",
                operation="normalize",
            )
        return dataclasses.replace(
            snapshot,
            status=SubscriptionStatus.CANCELED,
            canceled_at=canceled_at,
        )

    # Payments --------------------------------------------------------------
    def _payment_succeeded(self, event: RawEvent) -> PaymentOutcome:
        return self._payment_outcome(
            event.payload,
            status=PaymentStatus.SUCCEEDED,
            amount_field="amount_paid",
            default_description="Subscription payment",
            include_receipt=True,
        )

    def _payment_failed(self, event: RawEvent) -> PaymentOutcome:
        return self._payment_outcome(
            event.payload,
            status=PaymentStatus.FAILED,
            amount_field="amount_due",
            default_description="Subscription payment failed",
            include_receipt=False,
        )

    def _payment_outcome(
        self,
        invoice: Mapping[str, Any],
        *,
        status: PaymentStatus,
        amount_field: str,
        default_description: str,
        include_receipt: bool,
    ) -> PaymentOutcome:
        invoice_id = _require_str(invoice, "id", "invoice")
        amount = invoice.get(amount_field)
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValidationError(
                f"Missing or invalid '{amount_field}'",
                entity=f"invoice:{invoice_id}",
                operation="normalize",
            )
        currency = _require_str(invoice, "currency", invoice_id).lower()

        # Failed invoices may have no payment intent; the invoice id keeps redelivery idempotent.
        payment_ref = _reference(invoice.get("payment_intent")) or invoice_id
        receipt = invoice.get("hosted_invoice_url") if include_receipt else None
        return PaymentOutcome(
            stripe_payment_id=payment_ref,
            stripe_subscription_id=_invoice_subscription(invoice),
            amount=amount,
            currency=currency,
            status=status,
            description=invoice.get("description") or default_description,
            receipt_url=receipt if isinstance(receipt, str) else None,
        )


def _require_str(obj: Mapping[str, Any], key: str, context: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Missing required field '{key}'", entity=context, operation="normalize")
    return value


def _from_epoch(value: int, key: str, context: str) -> datetime:
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValidationError(
            f"Timestamp '{key}' is out of range", entity=context, operation="normalize"
        ) from exc


def _timestamp(obj: Mapping[str, Any], key: str, context: str) -> datetime:
    value = obj.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"Missing required field '{key}'", entity=context, operation="normalize")
    return _from_epoch(value, key, context)


def _optional_timestamp(obj: Mapping[str, Any], key: str, context: str) -> Optional[datetime]:
    if obj.get(key) is None:
        return None
    return _timestamp(obj, key, context)


def _reference(value: Any) -> Optional[str]:
    """Stripe fields are either an id string or an expanded object carrying ``id``."""
    if isinstance(value, str) and value:
        return value
    if isinstance(value, Mapping):
        inner = value.get("id")
        return inner if isinstance(inner, str) and inner else None
    return None


def _first_item(obj: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    items = obj.get("items")
    if not isinstance(items, Mapping):
        return None
    data = items.get("data")
    if isinstance(data, list) and data and isinstance(data[0], Mapping):
        return data[0]
    return None


def _period_source(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    # Newer API versions report billing periods on the subscription item.
    if obj.get("current_period_start") is not None:
        return obj
    return _first_item(obj) or obj


def _first_price_id(obj: Mapping[str, Any]) -> Optional[str]:
    item = _first_item(obj)
    if item is None:
        return None
    return _reference(item.get("price"))


def _invoice_subscription(invoice: Mapping[str, Any]) -> Optional[str]:
    direct = _reference(invoice.get("subscription"))
    if direct:
        return direct
    parent = invoice.get("parent")
    if isinstance(parent, Mapping):
        details = parent.get("subscription_details")
        if isinstance(details, Mapping):
            return _reference(details.get("subscription"))
    return None
