from __future__ import annotations

from typing import List, Optional, Tuple

from ..domain.errors import NotFoundError
from ..domain.models import Payment, PaymentStatus, Plan
from ..domain.ports.persistence import PaymentRepository, PlanRepository


class BillingQueryService:
    """Read-only access to the plan catalogue and a user's payment history."""

    MAX_PAGE_SIZE = 100

    def __init__(self, plans: PlanRepository, payments: PaymentRepository) -> None:
        self._plans = plans
        self._payments = payments

    def list_plans(self) -> List[Plan]:
        return self._plans.list_plans(active_only=True)

    def list_payments(
        self,
        user_id: int,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[PaymentStatus] = None,
    ) -> Tuple[List[Payment], int]:
        page = max(page, 1)
        limit = max(min(limit, self.MAX_PAGE_SIZE), 1)
        items = self._payments.list_payments_for_user(
            user_id, status=status, limit=limit, offset=(page - 1) * limit
        )
        return items, self._payments.count_payments_for_user(user_id, status)

    def get_payment(self, user_id: int, payment_id: int) -> Payment:
        payment = self._payments.get_payment_for_user(payment_id, user_id)
        if payment is None:
            raise NotFoundError("Payment not found", entity=f"payment:{payment_id}", operation="get_payment")
        return payment
