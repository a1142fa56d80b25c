from typing import List

from fastapi import APIRouter, Depends

from ....core.dependencies import get_query_service
from ....services.query_service import BillingQueryService
from ..schemas.payment_schemas import PlanResponse

router = APIRouter(prefix="/api/plans", tags=["plans"])


@router.get("", response_model=List[PlanResponse])
def list_plans(query_service: BillingQueryService = Depends(get_query_service)) -> List[PlanResponse]:
    """Get available subscription plans."""
    return [PlanResponse.from_domain(plan) for plan in query_service.list_plans()]
