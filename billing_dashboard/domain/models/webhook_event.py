from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class WebhookEventRecord:
    """One verified Stripe delivery and what the service did with it."""

    id: int
    event_id: str
    event_type: str
    outcome: str
    error: Optional[str]
    received_at: datetime
    processed_at: datetime
