from datetime import datetime, timezone

import pytest

from billing_dashboard.domain.errors import ValidationError
from billing_dashboard.domain.events import IgnoredEvent, PaymentOutcome, RawEvent, SubscriptionSnapshot
from billing_dashboard.domain.models import PaymentStatus, SubscriptionStatus

from conftest import PERIOD_END, PERIOD_START, event_envelope, invoice_object, subscription_object


def _raw(event_type, obj):
    return RawEvent.from_envelope(event_envelope(event_type, obj))


def test_subscription_updated_becomes_snapshot(normalizer):
    record = normalizer.normalize(
        _raw(
            "customer.subscription.updated",
            subscription_object("sub_1", status="past_due", cancel_at_period_end=True, metadata={"user_id": "7"}),
        )
    )

    assert isinstance(record, SubscriptionSnapshot)
    assert record.stripe_subscription_id == "sub_1"
    assert record.status == SubscriptionStatus.PAST_DUE
    assert record.cancel_at_period_end is True
    assert record.current_period_start == datetime.fromtimestamp(PERIOD_START, tz=timezone.utc)
    assert record.current_period_end == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)
    assert record.price_id == "price_pro"
    assert record.metadata == {"user_id": "7"}


def test_period_falls_back_to_subscription_item(normalizer):
    obj = subscription_object("sub_1")
    obj.pop("current_period_start")
    obj.pop("current_period_end")
    obj["items"]["data"][0].update(current_period_start=PERIOD_START, current_period_end=PERIOD_END)

    record = normalizer.normalize(_raw("customer.subscription.created", obj))

    assert record.current_period_end == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)


def test_subscription_deleted_forces_canceled_with_timestamp(normalizer):
    obj = subscription_object("sub_1", status="active", ended_at=PERIOD_START + 10)

    record = normalizer.normalize(_raw("customer.subscription.deleted", obj))

    assert record.status == SubscriptionStatus.CANCELED
    assert record.canceled_at == datetime.fromtimestamp(PERIOD_START + 10, tz=timezone.utc)


def test_subscription_deleted_uses_event_time_without_other_timestamps(normalizer):
    record = normalizer.normalize(_raw("customer.subscription.deleted", subscription_object("sub_1")))

    assert record.canceled_at == datetime.fromtimestamp(PERIOD_START + 60, tz=timezone.utc)


def test_invoice_paid_becomes_succeeded_outcome(normalizer):
    record = normalizer.normalize(_raw("invoice.payment_succeeded", invoice_object()))

    assert record == PaymentOutcome(
        stripe_payment_id="pi_1",
        stripe_subscription_id="sub_1",
        amount=2999,
        currency="usd",
        status=PaymentStatus.SUCCEEDED,
        description="Subscription payment",
        receipt_url="https://invoice.stripe.test/in_1",
    )


def test_invoice_failed_uses_amount_due_and_invoice_reference(normalizer):
    record = normalizer.normalize(
        _raw("invoice.payment_failed", invoice_object("in_9", payment_intent=None, paid=False))
    )

    assert record.status == PaymentStatus.FAILED
    assert record.amount == 2999
    assert record.stripe_payment_id == "in_9"
    assert record.description == "Subscription payment failed"
    assert record.receipt_url is None


def test_invoice_subscription_read_from_parent_details(normalizer):
    invoice = invoice_object(subscription=None)
    invoice["parent"] = {"subscription_details": {"subscription": "sub_parent"}}

    record = normalizer.normalize(_raw("invoice.payment_succeeded", invoice))

    assert record.stripe_subscription_id == "sub_parent"


def test_expanded_payment_intent_is_reduced_to_its_id(normalizer):
    invoice = invoice_object(payment_intent=None)
    invoice["payment_intent"] = {"id": "pi_expanded", "status": "succeeded"}

    record = normalizer.normalize(_raw("invoice.payment_succeeded", invoice))

    assert record.stripe_payment_id == "pi_expanded"


def test_untracked_event_type_is_ignored(normalizer):
    record = normalizer.normalize(_raw("charge.refunded", {"id": "ch_1"}))

    assert record == IgnoredEvent(event_type="charge.refunded")


@pytest.mark.parametrize(
    "mutate",
    [
        lambda obj: obj.pop("status"),
        lambda obj: obj.update(status="paused"),
        lambda obj: obj.update(current_period_end=PERIOD_START),
        lambda obj: obj.update(cancel_at_period_end="yes"),
    ],
)
def test_malformed_subscription_payload_is_rejected(normalizer, mutate):
    obj = subscription_object("sub_1")
    mutate(obj)

    with pytest.raises(ValidationError):
        normalizer.normalize(_raw("customer.subscription.updated", obj))


def test_invoice_without_amount_is_rejected(normalizer):
    invoice = invoice_object()
    invoice.pop("amount_paid")

    with pytest.raises(ValidationError):
        normalizer.normalize(_raw("invoice.payment_succeeded", invoice))


@pytest.mark.parametrize("field", ["current_period_end", "canceled_at", "trial_end"])
def test_out_of_range_timestamp_is_rejected(normalizer, field):
    obj = subscription_object("sub_1")
    obj[field] = 10**18

    with pytest.raises(ValidationError):
        normalizer.normalize(_raw("customer.subscription.updated", obj))


def test_non_object_metadata_is_rejected(normalizer):
    obj = subscription_object("sub_1")
    obj["metadata"] = ["user_id", "7"]

    with pytest.raises(ValidationError):
        normalizer.normalize(_raw("customer.subscription.updated", obj))
