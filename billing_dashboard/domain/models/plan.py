from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List


@dataclass(slots=True)
class Plan:
    id: int
    name: str
    stripe_price_id: str
    stripe_product_id: str
    amount: int
    currency: str
    interval: str
    interval_count: int
    is_active: bool
    created_at: datetime
    features: List[str] = field(default_factory=list)
