"""Pydantic schemas for user API endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from ....domain.models import User, UserActivity
from .common import Pagination


class UserRegisterRequest(BaseModel):
    """Request schema for user registration."""

    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = ""
    last_name: str = ""


class UserLoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """Response schema for user data."""

    id: int
    email: str
    first_name: str
    last_name: str
    has_billing_account: bool
    created_at: Optional[datetime]

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            has_billing_account=bool(user.stripe_customer_id),
            created_at=user.created_at,
        )


class UserLoginResponse(BaseModel):
    """Response schema for user login and registration."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class ActivityResponse(BaseModel):
    id: int
    action: str
    description: str
    metadata: Dict[str, Any]
    created_at: datetime

    @classmethod
    def from_domain(cls, activity: UserActivity) -> "ActivityResponse":
        return cls(
            id=activity.id,
            action=activity.action,
            description=activity.description,
            metadata=activity.metadata,
            created_at=activity.created_at,
        )


class ActivityListResponse(BaseModel):
    items: List[ActivityResponse]
    pagination: Pagination
