import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timedelta

import pytest
from faker import Faker
from flask_jwt_extended import create_access_token

from portal import create_app
from portal.extensions import db
from portal.models.api_token import ApiToken
from portal.models.subscription import Subscription
from portal.models.user import User
from portal.security.tokens import generate_token, hash_token, token_lookup_key

# Initialize Faker for generating test data
fake = Faker()

WEBHOOK_SECRET = "whsec_test_secret"


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "db: mark test as database-intensive"
    )
    config.addinivalue_line(
        "markers",
        "auth: mark test as authentication-related"
    )
    config.addinivalue_line(
        "markers",
        "payment: mark test as payment-related"
    )


@pytest.fixture(scope="session")
def app():
    """Create application for testing"""
    app = create_app("testing")

    with app.app_context():
        yield app


@pytest.fixture(autouse=True)
def _clean_state(app):
    """Fresh tables and empty rate-limit windows for every test"""
    db.create_all()
    app.extensions["rate_limiter"].store.clear()
    yield
    db.session.remove()
    db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def limiter(app):
    return app.extensions["rate_limiter"]


@pytest.fixture()
def make_user():
    def _make_user(tier="tier1", email=None, password="correct-horse-battery", name=None):
        user = User(
            email=email or fake.unique.email(),
            name=name or fake.name(),
            membership_tier=tier,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture()
def session_headers():
    """Authorization headers carrying a session JWT for ``user``"""

    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def make_api_token():
    """Store an API token and return ``(plaintext, ApiToken)``"""

    def _make_api_token(user, scopes, expires_at=None, name="test token"):
        plaintext = generate_token()
        api_token = ApiToken(
            user_id=user.id,
            name=name,
            token_lookup=token_lookup_key(plaintext),
            token_hash=hash_token(plaintext),
            scopes=scopes,
            expires_at=expires_at,
        )
        db.session.add(api_token)
        db.session.commit()
        return plaintext, api_token

    return _make_api_token


@pytest.fixture()
def make_subscription():
    def _make_subscription(user, status="active", tier="tier2", stripe_subscription_id=None, **kwargs):
        subscription = Subscription(
            user_id=user.id,
            stripe_subscription_id=stripe_subscription_id or f"sub_{uuid.uuid4().hex[:14]}",
            stripe_customer_id=kwargs.pop("stripe_customer_id", f"cus_{uuid.uuid4().hex[:14]}"),
            status=status,
            current_tier=tier,
            start_date=kwargs.pop("start_date", datetime.utcnow() - timedelta(days=30)),
            **kwargs,
        )
        db.session.add(subscription)
        db.session.commit()
        return subscription

    return _make_subscription


def sign_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a Stripe-Signature header for ``payload``"""
    timestamp = int(timestamp if timestamp is not None else time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type, obj, created=None, event_id=None):
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "created": int(created if created is not None else time.time()),
        "data": {"object": obj},
    }


@pytest.fixture()
def post_webhook(client):
    """POST a signed event to the Stripe webhook endpoint"""

    def _post(event, secret=WEBHOOK_SECRET, signature=None):
        payload = json.dumps(event)
        headers = {"Content-Type": "application/json"}
        header = signature if signature is not None else sign_payload(payload, secret)
        if header:
            headers["Stripe-Signature"] = header
        return client.post("/api/webhooks/stripe", data=payload, headers=headers)

    return _post


@pytest.fixture()
def stripe_event():
    return make_event


@pytest.fixture()
def stripe_signature():
    return sign_payload
