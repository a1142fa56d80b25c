"""Normalized billing records produced from inbound Stripe events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

from .models import PaymentStatus, SubscriptionStatus


@dataclass(frozen=True, slots=True)
class RawEvent:
    """Verified Stripe event envelope, before any field is interpreted."""

    event_id: str
    event_type: str
    payload: Dict[str, Any]
    created: Optional[int] = None

    @classmethod
    def from_envelope(cls, envelope: Dict[str, Any]) -> "RawEvent":
        data = envelope.get("data") or {}
        obj = data.get("object") if isinstance(data, dict) else None
        return cls(
            event_id=str(envelope.get("id") or ""),
            event_type=str(envelope.get("type") or ""),
            payload=obj if isinstance(obj, dict) else {},
            created=envelope.get("created") if isinstance(envelope.get("created"), int) else None,
        )


@dataclass(frozen=True, slots=True)
class SubscriptionSnapshot:
    stripe_subscription_id: str
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    canceled_at: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    price_id: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PaymentOutcome:
    stripe_payment_id: str
    stripe_subscription_id: Optional[str]
    amount: int
    currency: str
    status: PaymentStatus
    description: str
    receipt_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class IgnoredEvent:
    """Event type this service does not track; acknowledged and dropped."""

    event_type: str


NormalizedRecord = Union[SubscriptionSnapshot, PaymentOutcome, IgnoredEvent]
