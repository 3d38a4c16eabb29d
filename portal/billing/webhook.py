import json
import logging

import stripe

from portal.errors import WebhookSignatureError

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 300  # 5 minutes


def verify_event(payload, signature_header, secret, tolerance=DEFAULT_TOLERANCE):
    """
    Verify a Stripe webhook and return the event as a plain dict.

    Raises WebhookSignatureError on any failure. Nothing is read from or
    written to the database before this returns.
    """
    if not signature_header:
        raise WebhookSignatureError("Missing stripe-signature header")

    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
        raise WebhookSignatureError()

    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise WebhookSignatureError("Webhook payload is not valid UTF-8")

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise WebhookSignatureError()

    try:
        event = json.loads(payload)
    except ValueError:
        raise WebhookSignatureError("Webhook payload is not valid JSON")

    if not isinstance(event, dict) or not event.get("type"):
        raise WebhookSignatureError("Webhook payload is not an event")

    return event
