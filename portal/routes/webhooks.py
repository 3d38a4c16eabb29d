import logging

import sentry_sdk
from flask import Blueprint, current_app, jsonify, request

from portal.billing.reconciler import SubscriptionReconciler
from portal.billing.webhook import verify_event

logger = logging.getLogger(__name__)

bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    """
    Stripe webhook endpoint.

    Signature failures raise WebhookSignatureError (400) before any database
    access. Handler failures answer 500 so Stripe redelivers.
    """
    payload = request.get_data()
    event = verify_event(
        payload,
        request.headers.get("Stripe-Signature"),
        current_app.config.get("STRIPE_WEBHOOK_SECRET"),
        tolerance=current_app.config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
    )

    try:
        SubscriptionReconciler().reconcile(event)
    except Exception as e:
        logger.exception(
            "Webhook handler error",
            extra={"event_id": event.get("id"), "event_type": event.get("type")},
        )
        sentry_sdk.capture_exception(e)
        return jsonify({"error": "Webhook handler error"}), 500

    return jsonify({"received": True}), 200
