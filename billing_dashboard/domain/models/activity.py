from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class ActivityAction(str, Enum):
    USER_REGISTERED = "USER_REGISTERED"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    SUBSCRIPTION_CREATED = "SUBSCRIPTION_CREATED"
    SUBSCRIPTION_CANCELED = "SUBSCRIPTION_CANCELED"
    SUBSCRIPTION_REACTIVATED = "SUBSCRIPTION_REACTIVATED"
    PAYMENT_SUCCEEDED = "PAYMENT_SUCCEEDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


@dataclass(slots=True)
class UserActivity:
    id: int
    user_id: int
    action: str
    description: str
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
