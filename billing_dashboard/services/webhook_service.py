"""Inbound Stripe webhook processing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..domain.errors import ValidationError
from ..domain.events import IgnoredEvent, PaymentOutcome, RawEvent, SubscriptionSnapshot
from ..domain.ports.persistence import WebhookEventRepository
from .event_normalizer import BillingEventNormalizer
from .state_writer import BillingStateWriter
from .stripe_service import StripeGateway

logger = logging.getLogger(__name__)

OUTCOME_PROCESSED = "processed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_IGNORED = "ignored"
OUTCOME_FAILED = "failed"
OUTCOME_ERROR = "error"


@dataclass(slots=True)
class WebhookResult:
    event_id: str
    event_type: str
    outcome: str
    detail: Optional[str] = None


class WebhookProcessor:
    """Verifies, normalizes and applies one Stripe delivery.

    Signature or envelope problems raise ``ValidationError`` and the caller
    answers 4xx. Once verified, malformed payloads and untracked event types
    are acknowledged (recorded as ``failed`` / ``ignored``) so Stripe stops
    redelivering them. Storage errors propagate so Stripe retries.
    """

    def __init__(
        self,
        gateway: StripeGateway,
        normalizer: BillingEventNormalizer,
        writer: BillingStateWriter,
        events: WebhookEventRepository,
        webhook_secret: str,
    ) -> None:
        if not webhook_secret:
            raise RuntimeError("STRIPE_WEBHOOK_SECRET is not configured.")
        self._gateway = gateway
        self._normalizer = normalizer
        self._writer = writer
        self._events = events
        self._webhook_secret = webhook_secret

    def handle(self, payload: bytes, signature: str) -> WebhookResult:
        envelope = self._gateway.verify_webhook(payload, signature, self._webhook_secret)
        event = RawEvent.from_envelope(envelope)
        if not event.event_id or not event.event_type:
            raise ValidationError("Event envelope lacks id or type", operation="verify_webhook")

        received_at = datetime.now(timezone.utc).isoformat()
        logger.info("Stripe webhook: %s %s", event.event_type, event.event_id)

        try:
            record = self._normalizer.normalize(event)
        except ValidationError as exc:
            logger.error("Rejected Stripe event %s (%s): %s", event.event_id, event.event_type, exc)
            return self._finish(event, OUTCOME_FAILED, str(exc), received_at)

        if isinstance(record, IgnoredEvent):
            logger.info("Unhandled event type: %s", record.event_type)
            return self._finish(event, OUTCOME_IGNORED, None, received_at)

        try:
            if isinstance(record, SubscriptionSnapshot):
                applied = self._writer.apply_subscription_snapshot(record) is not None
            elif isinstance(record, PaymentOutcome):
                applied = self._writer.apply_payment_outcome(record) is not None
            else:
                raise TypeError(f"Unexpected normalized record {type(record).__name__}")
        except Exception as exc:
            logger.exception("Webhook processing failed for %s %s", event.event_type, event.event_id)
            self._record(event, OUTCOME_ERROR, str(exc), received_at)
            raise

        return self._finish(event, OUTCOME_PROCESSED if applied else OUTCOME_SKIPPED, None, received_at)

    def _finish(self, event: RawEvent, outcome: str, detail: Optional[str], received_at: str) -> WebhookResult:
        self._record(event, outcome, detail, received_at)
        return WebhookResult(event.event_id, event.event_type, outcome, detail)

    def _record(self, event: RawEvent, outcome: str, detail: Optional[str], received_at: str) -> None:
        try:
            self._events.record_webhook_event(event.event_id, event.event_type, outcome, detail, received_at)
        except Exception:
            logger.exception("Failed to record webhook event %s as %s", event.event_id, outcome)
