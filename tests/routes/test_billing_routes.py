from unittest.mock import patch

import pytest

pytestmark = pytest.mark.payment

CHECKOUT_BODY = {
    "tier_id": "tier2",
    "success_url": "https://portal.example.com/success",
    "cancel_url": "https://portal.example.com/cancel",
}


@pytest.fixture
def fake_checkout():
    session = {"id": "cs_test_123", "url": "https://checkout.stripe.com/c/cs_test_123"}
    with patch("portal.routes.billing.StripeService.create_checkout_session", return_value=session) as create:
        yield create


def test_checkout_returns_session(client, make_user, session_headers, fake_checkout):
    user = make_user()

    response = client.post("/api/checkout", json=CHECKOUT_BODY, headers=session_headers(user))

    assert response.status_code == 200
    assert response.get_json() == {"session_id": "cs_test_123", "url": "https://checkout.stripe.com/c/cs_test_123"}
    args = fake_checkout.call_args[0]
    assert args[0].id == user.id
    assert args[1:] == ("tier2", CHECKOUT_BODY["success_url"], CHECKOUT_BODY["cancel_url"])
    assert response.headers["X-RateLimit-Limit"] == "10"


def test_checkout_missing_fields(client, make_user, session_headers, fake_checkout):
    response = client.post("/api/checkout", json={"tier_id": "tier2"}, headers=session_headers(make_user()))

    assert response.status_code == 400
    assert response.get_json()["message"] == "Missing required fields"
    fake_checkout.assert_not_called()


def test_checkout_unknown_tier(client, make_user, session_headers):
    body = {**CHECKOUT_BODY, "tier_id": "platinum"}

    response = client.post("/api/checkout", json=body, headers=session_headers(make_user()))

    assert response.status_code == 400
    assert response.get_json()["message"] == "Tier not available"


def test_checkout_requires_session(client):
    assert client.post("/api/checkout", json=CHECKOUT_BODY).status_code == 401


def test_checkout_strict_limit_per_user(client, make_user, session_headers, fake_checkout):
    headers = session_headers(make_user())
    for _ in range(10):
        assert client.post("/api/checkout", json=CHECKOUT_BODY, headers=headers).status_code == 200

    response = client.post("/api/checkout", json=CHECKOUT_BODY, headers=headers)

    assert response.status_code == 429
    assert 1 <= int(response.headers["Retry-After"]) <= 60
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert "X-RateLimit-Reset" in response.headers

    # Another member has a separate window
    other = client.post("/api/checkout", json=CHECKOUT_BODY, headers=session_headers(make_user()))
    assert other.status_code == 200


def test_list_live_subscriptions(client, make_user, session_headers, make_subscription):
    user = make_user(tier="tier2")
    make_subscription(user, status="active")
    make_subscription(user, status="canceled")

    response = client.get("/api/subscription", headers=session_headers(user))

    assert response.status_code == 200
    assert [s["status"] for s in response.get_json()["subscriptions"]] == ["active"]


def test_cancel_subscription(client, make_user, session_headers, make_subscription):
    user = make_user(tier="tier2")
    subscription = make_subscription(user)

    with patch("portal.billing.subscriptions.StripeService.cancel_subscription") as cancel:
        response = client.post(
            "/api/subscription/cancel",
            json={"subscription_id": subscription.id},
            headers=session_headers(user),
        )

    assert response.status_code == 200
    cancel.assert_called_once_with(subscription.stripe_subscription_id)


def test_cancel_requires_subscription_id(client, make_user, session_headers):
    response = client.post("/api/subscription/cancel", json={}, headers=session_headers(make_user()))

    assert response.status_code == 400
    assert response.get_json()["message"] == "Missing subscription_id"


def test_cancel_other_members_subscription(client, make_user, session_headers, make_subscription):
    subscription = make_subscription(make_user())

    with patch("portal.billing.subscriptions.StripeService.cancel_subscription") as cancel:
        response = client.post(
            "/api/subscription/cancel",
            json={"subscription_id": subscription.id},
            headers=session_headers(make_user()),
        )

    assert response.status_code == 404
    cancel.assert_not_called()
