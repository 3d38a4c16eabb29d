import json
import time

import pytest

from portal.billing.webhook import verify_event
from portal.errors import WebhookSignatureError

SECRET = "whsec_unit_secret"


@pytest.fixture
def payload(stripe_event):
    return json.dumps(stripe_event("invoice.paid", {"id": "in_1", "subscription": "sub_1"}))


def test_valid_signature_returns_event(payload, stripe_signature):
    event = verify_event(payload.encode("utf-8"), stripe_signature(payload, SECRET), SECRET)

    assert event["type"] == "invoice.paid"
    assert event["data"]["object"]["subscription"] == "sub_1"


def test_missing_header(payload):
    with pytest.raises(WebhookSignatureError) as exc:
        verify_event(payload, None, SECRET)
    assert "Missing" in exc.value.message


def test_unconfigured_secret_fails_closed(payload, stripe_signature):
    with pytest.raises(WebhookSignatureError):
        verify_event(payload, stripe_signature(payload, SECRET), "")


def test_wrong_secret(payload, stripe_signature):
    with pytest.raises(WebhookSignatureError):
        verify_event(payload, stripe_signature(payload, "whsec_other"), SECRET)


def test_tampered_payload(payload, stripe_signature):
    header = stripe_signature(payload, SECRET)
    tampered = payload.replace("sub_1", "sub_2")

    with pytest.raises(WebhookSignatureError):
        verify_event(tampered, header, SECRET)


def test_stale_timestamp(payload, stripe_signature):
    header = stripe_signature(payload, SECRET, timestamp=time.time() - 3600)

    with pytest.raises(WebhookSignatureError):
        verify_event(payload, header, SECRET, tolerance=300)


def test_malformed_header(payload):
    with pytest.raises(WebhookSignatureError):
        verify_event(payload, "not-a-signature", SECRET)


def test_signed_non_event_body(stripe_signature):
    body = json.dumps(["not", "an", "event"])

    with pytest.raises(WebhookSignatureError):
        verify_event(body, stripe_signature(body, SECRET), SECRET)


def test_non_utf8_payload():
    with pytest.raises(WebhookSignatureError):
        verify_event(b"\xff\xfe\x00", "t=1,v1=abc", SECRET)
