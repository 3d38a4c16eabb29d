"""
Public API authenticated with bearer API tokens.
"""

import logging

from flask import Blueprint, g, jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from portal.errors import NotFoundError, ValidationError
from portal.extensions import db
from portal.models.subscription import Subscription
from portal.models.user import User
from portal.security.authorizer import require_api_token

logger = logging.getLogger(__name__)

bp = Blueprint("api_v1", __name__, url_prefix="/api/v1")


def _token_owner():
    user = db.session.get(User, g.api_token.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@bp.route("/profile", methods=["GET"])
@require_api_token("read:profile")
def get_profile():
    return jsonify({"profile": _token_owner().to_dict()})


@bp.route("/profile", methods=["PATCH"])
@require_api_token("write:profile")
def update_profile():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "name" not in data:
        raise ValidationError("name is required")

    name = data["name"]
    if name is not None and (not isinstance(name, str) or len(name.strip()) > 120):
        raise ValidationError("name must be a string of at most 120 characters")

    user = _token_owner()
    try:
        user.name = name.strip() if name else None
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(f"Profile of user {user.id} updated via API token {g.api_token.token_id}")
    return jsonify({"profile": user.to_dict()})


@bp.route("/subscriptions", methods=["GET"])
@require_api_token("read:subscriptions")
def list_subscriptions():
    subscriptions = (
        Subscription.query
        .filter_by(user_id=g.api_token.user_id)
        .order_by(Subscription.created_at.desc())
        .all()
    )
    return jsonify({"subscriptions": [s.to_dict() for s in subscriptions]})


@bp.route("/admin/stats", methods=["GET"])
@require_api_token("admin:stats")
def admin_stats():
    users_by_tier = dict(
        db.session.query(User.membership_tier, func.count(User.id))
        .group_by(User.membership_tier)
        .all()
    )
    subscriptions_by_status = dict(
        db.session.query(Subscription.status, func.count(Subscription.id))
        .group_by(Subscription.status)
        .all()
    )
    return jsonify({
        "users": {
            "total": sum(users_by_tier.values()),
            "by_tier": users_by_tier,
        },
        "subscriptions": {
            "total": sum(subscriptions_by_status.values()),
            "by_status": subscriptions_by_status,
        },
    })
