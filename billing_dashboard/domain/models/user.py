"""User domain model for dashboard accounts."""

from datetime import datetime
from typing import Optional


class User:
    """
    User entity owning subscriptions and payments.

    Attributes:
        id: Unique identifier
        email: User email address (unique)
        password_hash: Hashed password
        first_name: Given name
        last_name: Family name
        stripe_customer_id: Linked Stripe customer, set on first subscription
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: int,
        email: str,
        password_hash: str,
        first_name: str = "",
        last_name: str = "",
        stripe_customer_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.email = email
        self.password_hash = password_hash
        self.first_name = first_name
        self.last_name = last_name
        self.stripe_customer_id = stripe_customer_id
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} customer={self.stripe_customer_id}>"
