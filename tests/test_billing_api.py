import json

import pytest
from fastapi.testclient import TestClient

from saas_billing_svc.app import create_app
from saas_billing_svc.models.subscription import Subscription
from saas_billing_svc.models.todo import Todo
from saas_billing_svc.models.user import User

from tests.testkit import sign_payload, stripe_subscription


def test_requires_authentication(client):
    assert client.get("/api/billing/subscription").status_code == 401
    response = client.get("/api/billing/subscription", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_get_subscription_none_for_free_user(client, make_user, auth_headers):
    user = make_user()
    response = client.get("/api/billing/subscription", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json() is None


def test_get_plans_lists_active_products_by_price(client, products):
    response = client.get("/api/billing/plans")
    assert response.status_code == 200
    assert [plan["name"] for plan in response.json()] == ["Free", "Pro"]


def test_checkout_session_binds_customer_once(client, db_session, make_user, auth_headers, fake_stripe):
    user = make_user(email='buyer@example.com')

    first = client.post("/api/billing/checkout-session", json={"price_id": "price_pro_monthly"}, headers=auth_headers(user))
    second = client.post("/api/billing/checkout-session", json={"price_id": "price_pro_monthly"}, headers=auth_headers(user))

    assert first.status_code == 200
    assert first.json()["url"] == "https://checkout.stripe.test/cus_1/price_pro_monthly"
    assert second.json()["url"] == first.json()["url"]
    assert len(fake_stripe.customers_created) == 1
    assert fake_stripe.customers_created[0][1] == {"userId": user.id}

    session = fake_stripe.checkout_sessions[0]
    assert session["success_url"] == "https://app.example.com/dashboard/billing?success=true"
    assert session["cancel_url"] == "https://app.example.com/dashboard/billing?canceled=true"

    db_session.expire_all()
    assert db_session.get(User, user.id).stripe_customer_id == 'cus_1'


def test_checkout_session_unconfigured_stripe(settings, auth_headers):
    settings.STRIPE_SECRET_KEY = None
    app = create_app(settings)
    client = TestClient(app)
    db = app.state.session_factory()
    user = User(email='buyer@example.com')
    db.add(user)
    db.commit()

    response = client.post("/api/billing/checkout-session", json={"price_id": "price_pro_monthly"}, headers=auth_headers(user))
    assert response.status_code == 500
    assert response.json()["detail"] == "Stripe is not configured"
    db.close()


def test_portal_session_without_customer_is_not_found(client, make_user, auth_headers, fake_stripe):
    user = make_user()
    response = client.post("/api/billing/portal-session", headers=auth_headers(user))
    assert response.status_code == 404
    assert fake_stripe.portal_sessions == []


def test_portal_session_returns_url(client, make_user, auth_headers, fake_stripe):
    user = make_user(stripe_customer_id='cus_9')
    response = client.post("/api/billing/portal-session", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["url"] == "https://billing.stripe.test/cus_9"
    assert fake_stripe.portal_sessions[0]["return_url"] == "https://app.example.com/dashboard/billing"


def test_cancel_and_reactivate_update_stripe_and_mirror(client, db_session, make_user, make_subscription,
                                                        auth_headers, fake_stripe):
    user = make_user(stripe_customer_id='cus_123')
    make_subscription(user)

    assert client.post("/api/billing/subscription/cancel", headers=auth_headers(user)).json() == {"success": True}
    db_session.expire_all()
    assert db_session.query(Subscription).filter(Subscription.user_id == user.id).one().cancel_at_period_end is True

    assert client.post("/api/billing/subscription/reactivate", headers=auth_headers(user)).status_code == 200
    db_session.expire_all()
    assert db_session.query(Subscription).filter(Subscription.user_id == user.id).one().cancel_at_period_end is False
    assert fake_stripe.cancel_updates == [("sub_123", True), ("sub_123", False)]


def test_cancel_without_subscription_is_not_found(client, make_user, auth_headers, fake_stripe):
    user = make_user()
    response = client.post("/api/billing/subscription/cancel", headers=auth_headers(user))
    assert response.status_code == 404
    assert fake_stripe.cancel_updates == []


def test_invoices_and_usage(client, db_session, make_user, auth_headers):
    user = make_user()
    db_session.add_all([Todo(user_id=user.id, title=f"todo {n}") for n in range(3)])
    db_session.commit()

    assert client.get("/api/billing/invoices", headers=auth_headers(user)).json() == []
    assert client.get("/api/billing/usage", headers=auth_headers(user)).json() == {"todos": 3}


def test_entitlements_for_free_user_at_limit(client, db_session, make_user, auth_headers, products):
    user = make_user()
    db_session.add_all([Todo(user_id=user.id, title=f"todo {n}") for n in range(10)])
    db_session.commit()

    body = client.get("/api/billing/entitlements", headers=auth_headers(user)).json()
    assert body["plan"] is None
    assert body["features"] == ["basic_todos", "basic_support"]
    assert body["todo_limit"] == 10
    assert body["can_create_todo"] is False


def test_rate_limit_per_caller(app, client, make_user, auth_headers):
    app.state.rate_limiter.limit = 2
    user = make_user()
    other = make_user(email='other@example.com')

    assert client.get("/api/billing/usage", headers=auth_headers(user)).status_code == 200
    assert client.get("/api/billing/usage", headers=auth_headers(user)).status_code == 200
    assert client.get("/api/billing/usage", headers=auth_headers(user)).status_code == 429
    assert client.get("/api/billing/usage", headers=auth_headers(other)).status_code == 200


def test_signup_checkout_webhook_unlocks_pro(client, make_user, auth_headers, fake_stripe, products):
    user = make_user(email='new@example.com')
    headers = auth_headers(user)

    checkout = client.post("/api/billing/checkout-session", json={"price_id": "price_pro_monthly"}, headers=headers)
    assert checkout.status_code == 200
    customer_id = fake_stripe.customers_created[0][2]
    fake_stripe.subscriptions['sub_new'] = stripe_subscription(sub_id='sub_new', customer=customer_id)

    payload = json.dumps({
        "id": "evt_checkout",
        "type": "checkout.session.completed",
        "created": 1_800_000_000,
        "data": {"object": {"id": "cs_1", "customer": customer_id, "subscription": "sub_new"}},
    })
    webhook = client.post("/api/stripe/webhook", content=payload, headers={"Stripe-Signature": sign_payload(payload)})
    assert webhook.json()["status"] == "processed"

    subscription = client.get("/api/billing/subscription", headers=headers).json()
    assert subscription["status"] == "active"
    assert subscription["cancel_at_period_end"] is False

    entitlements = client.get("/api/billing/entitlements", headers=headers).json()
    assert entitlements["plan"] == "Pro"
    assert "unlimited_todos" in entitlements["features"]
    assert entitlements["todo_limit"] is None


@pytest.mark.parametrize("path", ["/api/billing/invoices", "/api/billing/usage", "/api/billing/entitlements"])
def test_reads_require_authentication(client, path):
    assert client.get(path).status_code == 401
