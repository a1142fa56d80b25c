import json

import pytest

from billing_dashboard.domain.errors import ValidationError
from billing_dashboard.domain.models import PaymentStatus, SubscriptionStatus
from billing_dashboard.services.webhook_service import (
    OUTCOME_ERROR,
    OUTCOME_FAILED,
    OUTCOME_IGNORED,
    OUTCOME_PROCESSED,
    OUTCOME_SKIPPED,
    WebhookProcessor,
)

from conftest import WEBHOOK_SECRET, invoice_object, sign_payload, signed_event, subscription_object


def test_invoice_paid_records_payment_once(persistence, webhook_processor, user, subscription):
    payload, signature = signed_event("invoice.payment_succeeded", invoice_object(), event_id="evt_pay")

    first = webhook_processor.handle(payload, signature)
    second = webhook_processor.handle(payload, signature)

    assert first.outcome == OUTCOME_PROCESSED
    assert second.outcome == OUTCOME_SKIPPED
    payments = persistence.list_payments_for_user(user.id)
    assert len(payments) == 1
    assert payments[0].stripe_payment_id == "pi_1"
    assert payments[0].amount == 2999
    assert payments[0].status == PaymentStatus.SUCCEEDED
    assert persistence.get_webhook_event("evt_pay").outcome == OUTCOME_SKIPPED


def test_subscription_update_is_mirrored(persistence, webhook_processor, subscription):
    payload, signature = signed_event(
        "customer.subscription.updated",
        subscription_object("sub_1", status="past_due"),
    )

    result = webhook_processor.handle(payload, signature)

    assert result.outcome == OUTCOME_PROCESSED
    assert persistence.get_subscription(subscription.id).status == SubscriptionStatus.PAST_DUE


def test_subscription_deleted_marks_canceled(persistence, webhook_processor, subscription):
    payload, signature = signed_event("customer.subscription.deleted", subscription_object("sub_1"))

    webhook_processor.handle(payload, signature)

    stored = persistence.get_subscription(subscription.id)
    assert stored.status == SubscriptionStatus.CANCELED
    assert stored.canceled_at is not None


def test_unknown_subscription_is_skipped(persistence, webhook_processor):
    payload, signature = signed_event("customer.subscription.updated", subscription_object("sub_missing"))

    assert webhook_processor.handle(payload, signature).outcome == OUTCOME_SKIPPED


def test_untracked_event_is_ignored(persistence, webhook_processor):
    payload, signature = signed_event("charge.refunded", {"id": "ch_1"}, event_id="evt_refund")

    assert webhook_processor.handle(payload, signature).outcome == OUTCOME_IGNORED
    assert persistence.get_webhook_event("evt_refund").outcome == OUTCOME_IGNORED


def test_malformed_payload_is_recorded_as_failed(persistence, webhook_processor):
    invoice = invoice_object()
    invoice.pop("currency")
    payload, signature = signed_event("invoice.payment_succeeded", invoice, event_id="evt_bad")

    result = webhook_processor.handle(payload, signature)

    assert result.outcome == OUTCOME_FAILED
    record = persistence.get_webhook_event("evt_bad")
    assert record.outcome == OUTCOME_FAILED
    assert "currency" in record.error


def test_bad_signature_is_rejected(persistence, webhook_processor):
    payload, _ = signed_event("invoice.payment_succeeded", invoice_object(), event_id="evt_forged")

    with pytest.raises(ValidationError):
        webhook_processor.handle(payload, sign_payload(payload, secret="whsec_wrong"))
    with pytest.raises(ValidationError):
        webhook_processor.handle(payload, "")

    assert persistence.get_webhook_event("evt_forged") is None


def test_envelope_without_type_is_rejected(webhook_processor):
    payload = json.dumps({"id": "evt_x", "object": "event", "data": {"object": {}}}).encode("utf-8")

    with pytest.raises(ValidationError):
        webhook_processor.handle(payload, sign_payload(payload))


def test_storage_error_is_recorded_and_raised(persistence, gateway, normalizer, writer, subscription, monkeypatch):
    def broken(outcome):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(writer, "apply_payment_outcome", broken)
    processor = WebhookProcessor(gateway, normalizer, writer, persistence, WEBHOOK_SECRET)
    payload, signature = signed_event("invoice.payment_succeeded", invoice_object(), event_id="evt_retry")

    with pytest.raises(RuntimeError):
        processor.handle(payload, signature)

    assert persistence.get_webhook_event("evt_retry").outcome == OUTCOME_ERROR


def test_missing_webhook_secret_is_a_configuration_error(persistence, gateway, normalizer, writer):
    with pytest.raises(RuntimeError):
        WebhookProcessor(gateway, normalizer, writer, persistence, "")


def test_out_of_range_timestamp_is_acknowledged_as_failed(persistence, webhook_processor, subscription):
    payload, signature = signed_event(
        "customer.subscription.updated",
        subscription_object("sub_1", current_period_end=10**18),
        event_id="evt_far_future",
    )

    result = webhook_processor.handle(payload, signature)

    assert result.outcome == OUTCOME_FAILED
    assert persistence.get_webhook_event("evt_far_future").outcome == OUTCOME_FAILED
    assert persistence.get_subscription(subscription.id).status == SubscriptionStatus.ACTIVE
