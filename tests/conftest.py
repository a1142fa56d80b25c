import hashlib
import hmac
import json
import time
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from billing_dashboard.core.app_factory import create_application
from billing_dashboard.core.config import Settings
from billing_dashboard.domain.errors import PaymentProcessorError
from billing_dashboard.infrastructure.persistence.sqlite import SQLitePersistence
from billing_dashboard.services.activity_service import ActivityLogger
from billing_dashboard.services.event_normalizer import BillingEventNormalizer
from billing_dashboard.services.state_writer import BillingStateWriter
from billing_dashboard.services.stripe_service import StripeGateway
from billing_dashboard.services.subscription_service import SubscriptionLifecycleService
from billing_dashboard.services.webhook_service import WebhookProcessor

WEBHOOK_SECRET = "whsec_test_secret"
PERIOD_START = 1_700_000_000
PERIOD_END = PERIOD_START + 30 * 24 * 3600


class FakeStripeGateway(StripeGateway):
    """In-memory stand-in for the Stripe API; webhook verification stays real."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.fail_on: set = set()
        self._customers = 0
        self._subscriptions = 0

    def _call(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        if operation in self.fail_on:
            raise PaymentProcessorError("Your card was declined.", operation=operation)

    def create_customer(self, email: str, name: str, user_id: int) -> str:
        self._call("create_customer", email, user_id)
        self._customers += 1
        return f"cus_test_{self._customers}"

    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        self._call("attach_payment_method", payment_method_id, customer_id)

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        self._call("set_default_payment_method", customer_id, payment_method_id)

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        self._call("create_subscription", customer_id, price_id)
        self._subscriptions += 1
        subscription = subscription_object(
            f"sub_test_{self._subscriptions}",
            customer=customer_id,
            price_id=price_id,
            metadata=metadata,
        )
        subscription["latest_invoice"] = {
            "id": f"in_test_{self._subscriptions}",
            "payment_intent": {"id": "pi_test", "client_secret": "pi_test_secret_abc"},
        }
        return subscription

    def update_subscription(self, subscription_id: str, cancel_at_period_end: bool) -> Dict[str, Any]:
        self._call("update_subscription", subscription_id, cancel_at_period_end)
        return subscription_object(subscription_id, cancel_at_period_end=cancel_at_period_end)

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self._call("cancel_subscription", subscription_id)
        return subscription_object(subscription_id, status="canceled")


def subscription_object(
    subscription_id: str,
    *,
    status: str = "active",
    customer: str = "cus_test_1",
    price_id: str = "price_pro",
    cancel_at_period_end: bool = False,
    metadata: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    obj = {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "customer": customer,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "cancel_at_period_end": cancel_at_period_end,
        "canceled_at": None,
        "trial_start": None,
        "trial_end": None,
        "items": {"object": "list", "data": [{"id": "si_test", "price": {"id": price_id}}]},
        "metadata": metadata or {},
    }
    obj.update(extra)
    return obj


def invoice_object(
    invoice_id: str = "in_1",
    *,
    payment_intent: Optional[str] = "pi_1",
    subscription: Optional[str] = "sub_1",
    amount: int = 2999,
    currency: str = "usd",
    paid: bool = True,
) -> Dict[str, Any]:
    obj: Dict[str, Any] = {
        "id": invoice_id,
        "object": "invoice",
        "payment_intent": payment_intent,
        "subscription": subscription,
        "currency": currency,
        "amount_paid": amount if paid else 0,
        "amount_due": amount,
        "description": None,
        "hosted_invoice_url": f"https://invoice.stripe.test/{invoice_id}",
    }
    return obj


def event_envelope(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> Dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": PERIOD_START + 60,
        "data": {"object": obj},
    }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def signed_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> tuple:
    payload = json.dumps(event_envelope(event_type, obj, event_id)).encode("utf-8")
    return payload, sign_payload(payload)


@pytest.fixture
def persistence(tmp_path):
    store = SQLitePersistence(tmp_path / "billing.db")
    yield store
    store.close()


@pytest.fixture
def gateway():
    return FakeStripeGateway()


@pytest.fixture
def activity_logger(persistence):
    return ActivityLogger(persistence)


@pytest.fixture
def normalizer():
    return BillingEventNormalizer()


@pytest.fixture
def writer(persistence):
    return BillingStateWriter(persistence)


@pytest.fixture
def subscription_service(persistence, gateway, writer, normalizer, activity_logger):
    return SubscriptionLifecycleService(persistence, gateway, writer, normalizer, activity_logger)


@pytest.fixture
def webhook_processor(persistence, gateway, writer, normalizer):
    return WebhookProcessor(gateway, normalizer, writer, persistence, WEBHOOK_SECRET)


@pytest.fixture
def user(persistence):
    return persistence.create_user("ana@example.com", "not-a-real-hash", "Ana", "Souza")


@pytest.fixture
def plan(persistence):
    return persistence.create_plan(
        name="Pro",
        stripe_price_id="price_pro",
        stripe_product_id="prod_pro",
        amount=2999,
        currency="usd",
        interval="month",
        features=["10 projects", "Priority support"],
    )


@pytest.fixture
def subscription(persistence, user, plan, writer, normalizer):
    snapshot = normalizer.snapshot_from_subscription(
        subscription_object("sub_1", metadata={"user_id": str(user.id)})
    )
    return writer.record_created_subscription(user.id, plan.id, snapshot)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_dummy")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "api.db"))
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    return Settings()


@pytest.fixture
def client(settings, gateway):
    app = create_application(settings, payment_gateway=gateway)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def app_persistence(client):
    return client.app.state.container.persistence


def register(client, email: str = "ana@example.com", password: str = "secret123") -> Dict[str, str]:
    response = client.post(
        "/api/users/register",
        json={"email": email, "password": password, "first_name": "Ana", "last_name": "Souza"},
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
