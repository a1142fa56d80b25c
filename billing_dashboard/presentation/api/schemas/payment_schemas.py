"""Pydantic schemas for payment and plan endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from ....domain.models import Payment, Plan
from .common import Pagination


class PaymentResponse(BaseModel):
    id: int
    subscription_id: Optional[int]
    stripe_payment_id: str
    amount: int
    currency: str
    status: str
    description: Optional[str]
    receipt_url: Optional[str]
    created_at: datetime

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            subscription_id=payment.subscription_id,
            stripe_payment_id=payment.stripe_payment_id,
            amount=payment.amount,
            currency=payment.currency,
            status=payment.status.value,
            description=payment.description,
            receipt_url=payment.receipt_url,
            created_at=payment.created_at,
        )


class PaymentListResponse(BaseModel):
    items: List[PaymentResponse]
    pagination: Pagination


class PlanResponse(BaseModel):
    """Response schema for available plans."""

    id: int
    name: str
    stripe_price_id: str
    amount: int
    currency: str
    interval: str
    interval_count: int
    features: List[str]

    @classmethod
    def from_domain(cls, plan: Plan) -> "PlanResponse":
        return cls(
            id=plan.id,
            name=plan.name,
            stripe_price_id=plan.stripe_price_id,
            amount=plan.amount,
            currency=plan.currency,
            interval=plan.interval,
            interval_count=plan.interval_count,
            features=list(plan.features),
        )
