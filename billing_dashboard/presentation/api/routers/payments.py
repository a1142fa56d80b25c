from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ....core.dependencies import get_query_service
from ....domain.errors import BillingError
from ....domain.models import PaymentStatus, User
from ....services.query_service import BillingQueryService
from ..dependencies import get_current_user
from ..errors import to_http_exception
from ..schemas.common import Pagination
from ..schemas.payment_schemas import PaymentListResponse, PaymentResponse

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.get("", response_model=PaymentListResponse)
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    query_service: BillingQueryService = Depends(get_query_service),
) -> PaymentListResponse:
    """Get the current user's payment history."""
    payment_status = None
    if status_filter:
        try:
            payment_status = PaymentStatus(status_filter.upper())
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown payment status: {status_filter}",
            ) from exc

    items, total = query_service.list_payments(
        current_user.id,
        page=page,
        limit=limit,
        status=payment_status,
    )
    return PaymentListResponse(
        items=[PaymentResponse.from_domain(item) for item in items],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    query_service: BillingQueryService = Depends(get_query_service),
) -> PaymentResponse:
    try:
        payment = query_service.get_payment(current_user.id, payment_id)
    except BillingError as exc:
        raise to_http_exception(exc) from exc
    return PaymentResponse.from_domain(payment)
