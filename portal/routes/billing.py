import logging

from flask import Blueprint, jsonify, request
from flask_jwt_extended import current_user, jwt_required

from portal.billing.stripe_service import StripeService
from portal.billing.subscriptions import list_live_subscriptions, request_cancellation
from portal.errors import ValidationError
from portal.security.rate_limiter import rate_limit

logger = logging.getLogger(__name__)

bp = Blueprint("billing", __name__, url_prefix="/api")


@bp.route("/checkout", methods=["POST"])
@jwt_required()
@rate_limit("strict", key_func=lambda: current_user.email)
def create_checkout():
    """Start a Stripe Checkout session for a paid tier"""
    data = request.get_json(silent=True) or {}

    tier_id = data.get("tier_id")
    success_url = data.get("success_url")
    cancel_url = data.get("cancel_url")
    if not tier_id or not success_url or not cancel_url:
        raise ValidationError("Missing required fields")

    session = StripeService.create_checkout_session(current_user, tier_id, success_url, cancel_url)
    return jsonify({"session_id": session["id"], "url": session["url"]}), 200


@bp.route("/subscription", methods=["GET"])
@jwt_required()
def get_subscriptions():
    subscriptions = list_live_subscriptions(current_user)
    return jsonify({"subscriptions": [s.to_dict() for s in subscriptions]}), 200


@bp.route("/subscription/cancel", methods=["POST"])
@jwt_required()
def cancel_subscription():
    data = request.get_json(silent=True) or {}
    subscription_id = data.get("subscription_id")
    if not subscription_id:
        raise ValidationError("Missing subscription_id")

    request_cancellation(current_user, subscription_id)
    return jsonify({"message": "Subscription canceled successfully"}), 200
