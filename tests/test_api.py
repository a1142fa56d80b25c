from billing_dashboard.domain.models import PaymentStatus

from conftest import invoice_object, register, sign_payload, signed_event


def _seed_plan(persistence):
    return persistence.create_plan(
        name="Pro",
        stripe_price_id="price_pro",
        stripe_product_id="prod_pro",
        amount=2999,
        currency="usd",
        interval="month",
        features=["10 projects"],
    )


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_register_login_and_profile(client):
    register(client)

    response = client.post("/api/users/login", json={"email": "ana@example.com", "password": "secret123"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "ana@example.com"
    assert me.json()["has_billing_account"] is False

    activities = client.get("/api/users/activities", headers={"Authorization": f"Bearer {token}"}).json()
    assert [item["action"] for item in activities["items"]] == ["LOGIN", "USER_REGISTERED"]
    assert activities["pagination"] == {"current": 1, "pages": 1, "total": 2}


def test_duplicate_registration_is_rejected(client):
    register(client)

    response = client.post("/api/users/register", json={"email": "ana@example.com", "password": "secret123"})

    assert response.status_code == 400


def test_wrong_password_is_unauthorized(client):
    register(client)

    response = client.post("/api/users/login", json={"email": "ana@example.com", "password": "nope-nope"})

    assert response.status_code == 401


def test_logout_is_recorded_in_activity_trail(client):
    headers = register(client)

    response = client.post("/api/users/logout", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Logged out"}
    activities = client.get("/api/users/activities", headers=headers).json()
    assert activities["items"][0]["action"] == "LOGOUT"
    assert activities["items"][0]["description"] == "User logged out"
    assert client.post("/api/users/logout").status_code == 401


def test_protected_routes_require_token(client):
    assert client.get("/api/subscriptions").status_code == 401
    assert client.get("/api/payments", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_plans_are_listed(client, app_persistence):
    _seed_plan(app_persistence)

    plans = client.get("/api/plans").json()

    assert [plan["name"] for plan in plans] == ["Pro"]
    assert plans[0]["features"] == ["10 projects"]


def test_subscription_lifecycle_over_http(client, app_persistence, gateway):
    headers = register(client)
    plan = _seed_plan(app_persistence)

    created = client.post("/api/subscriptions", json={"plan_id": plan.id}, headers=headers)
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["client_secret"] == "pi_test_secret_abc"
    subscription_id = body["subscription"]["id"]

    canceled = client.post(f"/api/subscriptions/{subscription_id}/cancel", json={}, headers=headers)
    assert canceled.status_code == 200
    assert canceled.json()["subscription"]["cancel_at_period_end"] is True

    reactivated = client.post(f"/api/subscriptions/{subscription_id}/reactivate", headers=headers)
    assert reactivated.status_code == 200
    assert reactivated.json()["subscription"]["cancel_at_period_end"] is False

    again = client.post(f"/api/subscriptions/{subscription_id}/reactivate", headers=headers)
    assert again.status_code == 409

    listed = client.get("/api/subscriptions", headers=headers).json()
    assert listed["count"] == 1


def test_stripe_decline_maps_to_payment_required(client, app_persistence, gateway):
    headers = register(client)
    plan = _seed_plan(app_persistence)
    gateway.fail_on.add("create_subscription")

    response = client.post("/api/subscriptions", json={"plan_id": plan.id}, headers=headers)

    assert response.status_code == 402
    assert response.json()["detail"] == "Your card was declined."


def test_unknown_plan_and_foreign_subscription_are_not_found(client, app_persistence):
    owner = register(client)
    stranger = register(client, email="bruno@example.com")
    plan = _seed_plan(app_persistence)

    assert client.post("/api/subscriptions", json={"plan_id": 999}, headers=owner).status_code == 404

    subscription_id = client.post("/api/subscriptions", json={"plan_id": plan.id}, headers=owner).json()[
        "subscription"
    ]["id"]
    assert client.get(f"/api/subscriptions/{subscription_id}", headers=stranger).status_code == 404
    assert client.post(f"/api/subscriptions/{subscription_id}/cancel", headers=stranger).status_code == 404


def test_webhook_payment_shows_up_in_history(client, app_persistence):
    headers = register(client)
    plan = _seed_plan(app_persistence)
    client.post("/api/subscriptions", json={"plan_id": plan.id}, headers=headers)

    payload, signature = signed_event("invoice.payment_succeeded", invoice_object(subscription="sub_test_1"))
    for _ in range(2):
        response = client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
        )
        assert response.status_code == 200

    history = client.get("/api/payments", headers=headers).json()
    assert history["pagination"]["total"] == 1
    payment = history["items"][0]
    assert payment["stripe_payment_id"] == "pi_1"
    assert payment["status"] == PaymentStatus.SUCCEEDED.value

    detail = client.get(f"/api/payments/{payment['id']}", headers=headers)
    assert detail.status_code == 200
    assert client.get("/api/payments", params={"status": "failed"}, headers=headers).json()["items"] == []
    assert client.get("/api/payments", params={"status": "bogus"}, headers=headers).status_code == 400


def test_webhook_rejects_bad_signature(client):
    payload, _ = signed_event("invoice.payment_succeeded", invoice_object())

    forged = client.post(
        "/api/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": sign_payload(payload, secret="whsec_wrong")},
    )
    unsigned = client.post("/api/webhooks/stripe", content=payload)

    assert forged.status_code == 400
    assert unsigned.status_code == 400


def test_webhook_acknowledges_untracked_events(client):
    payload, signature = signed_event("customer.created", {"id": "cus_1"})

    response = client.post("/api/webhooks/stripe", content=payload, headers={"Stripe-Signature": signature})

    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "ignored"}
