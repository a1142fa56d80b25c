"""Stripe webhook endpoint."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from ....core.dependencies import get_webhook_processor
from ....domain.errors import ValidationError
from ....services.webhook_service import WebhookProcessor

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    """
    Handle Stripe webhook events.

    The raw body is required for signature verification. Anything other than
    a 2xx makes Stripe redeliver the event.
    """
    payload = await request.body()
    try:
        result = await run_in_threadpool(processor.handle, payload, stripe_signature or "")
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from exc

    return {"received": True, "outcome": result.outcome}
