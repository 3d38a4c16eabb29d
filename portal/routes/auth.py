import logging
import re

from flask import Blueprint, jsonify, request
from flask_jwt_extended import create_access_token, current_user, jwt_required
from sqlalchemy.exc import IntegrityError

from portal.errors import AuthenticationError, ConflictError, ValidationError
from portal.extensions import db
from portal.models.user import User
from portal.notifications import Notification, dispatch_notification
from portal.security.rate_limiter import rate_limit
from portal.tiers import DEFAULT_TIER

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MIN_PASSWORD_LENGTH = 8


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON data")
    return data


@bp.route("/register", methods=["POST"])
@rate_limit("strict")
def register():
    """Create a member on the default tier and queue the welcome email"""
    data = _json_body()

    email = str(data.get("email", "")).strip().lower()
    password = data.get("password") or ""
    name = (data.get("name") or "").strip() or None

    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if User.query.filter_by(email=email).first():
        raise ConflictError("An account with this email already exists")

    user = User(email=email, name=name, membership_tier=DEFAULT_TIER.value)
    user.set_password(password)

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("An account with this email already exists")

    logger.info(f"User {user.id} registered")
    dispatch_notification(Notification("welcome", user.id, {}))

    return jsonify({"user": user.to_dict()}), 201


@bp.route("/login", methods=["POST"])
@rate_limit("strict")
def login():
    data = _json_body()

    email = str(data.get("email", "")).strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = User.query.filter_by(email=email).first()
    if user is None or not user.check_password(password):
        logger.info("Failed login attempt", extra={"email": email})
        raise AuthenticationError("Invalid email or password")

    access_token = create_access_token(identity=str(user.id))
    return jsonify({"access_token": access_token, "user": user.to_dict()}), 200


@bp.route("/me", methods=["GET"])
@jwt_required()
def me():
    return jsonify({"user": current_user.to_dict()}), 200
