from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class PaymentStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    PENDING = "PENDING"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


@dataclass(slots=True)
class Payment:
    id: int
    user_id: int
    subscription_id: Optional[int]
    stripe_payment_id: str
    amount: int
    currency: str
    status: PaymentStatus
    description: Optional[str]
    receipt_url: Optional[str]
    created_at: datetime
