"""
Session-authenticated management of a member's API tokens.
"""

import logging
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request
from flask_jwt_extended import current_user, jwt_required
from sqlalchemy.exc import SQLAlchemyError

from portal.errors import AuthorizationError, NotFoundError, ValidationError
from portal.extensions import db
from portal.models.api_token import ApiToken
from portal.security.scopes import allowed_scopes_for_tier, is_known_scope, validate_scopes
from portal.security.tokens import generate_token, hash_token, token_lookup_key

logger = logging.getLogger(__name__)

bp = Blueprint("tokens", __name__, url_prefix="/api/user/tokens")

ONE_TIME_WARNING = "Save this token securely. You will not be able to view it again."
MAX_NAME_LENGTH = 100


@bp.route("", methods=["GET"])
@jwt_required()
def list_tokens():
    tokens = (
        ApiToken.query
        .filter_by(user_id=current_user.id)
        .order_by(ApiToken.created_at.desc(), ApiToken.id.desc())
        .all()
    )
    return jsonify({"tokens": [token.to_dict() for token in tokens]}), 200


def _parse_create_request(data):
    name = data.get("name")
    scopes = data.get("scopes")
    if not isinstance(name, str) or not name.strip() or not isinstance(scopes, list) or not scopes:
        raise ValidationError("Name and scopes array required")
    if len(name.strip()) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")

    unknown = [scope for scope in scopes if not isinstance(scope, str) or not is_known_scope(scope)]
    if unknown:
        raise ValidationError("Unknown scopes requested", payload={"invalid_scopes": unknown})

    expires_in_days = data.get("expires_in_days")
    if expires_in_days is not None:
        if isinstance(expires_in_days, bool) or not isinstance(expires_in_days, int) or expires_in_days <= 0:
            raise ValidationError("expires_in_days must be a positive integer")

    # Keep first occurrence order
    return name.strip(), list(dict.fromkeys(scopes)), expires_in_days


@bp.route("", methods=["POST"])
@jwt_required()
def create_token():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON data")

    name, scopes, expires_in_days = _parse_create_request(data)

    validation = validate_scopes(scopes, current_user.tier)
    if not validation.valid:
        raise AuthorizationError(
            "Invalid scopes for your tier",
            payload={
                "invalid_scopes": validation.invalid_scopes,
                "allowed_scopes": allowed_scopes_for_tier(current_user.tier),
            },
        )

    plaintext = generate_token()
    expires_at = datetime.utcnow() + timedelta(days=expires_in_days) if expires_in_days else None
    api_token = ApiToken(
        user_id=current_user.id,
        name=name,
        token_lookup=token_lookup_key(plaintext),
        token_hash=hash_token(plaintext),
        scopes=scopes,
        expires_at=expires_at,
    )

    try:
        db.session.add(api_token)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(f"API token {api_token.id} created for user {current_user.id}", extra={"scopes": scopes})

    return jsonify({
        "token": plaintext,
        **api_token.to_dict(),
        "warning": ONE_TIME_WARNING,
    }), 201


@bp.route("/<int:token_id>", methods=["DELETE"])
@jwt_required()
def delete_token(token_id):
    api_token = ApiToken.query.filter_by(id=token_id, user_id=current_user.id).first()
    if api_token is None:
        raise NotFoundError("Token not found")

    try:
        db.session.delete(api_token)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(f"API token {token_id} revoked by user {current_user.id}")
    return jsonify({"message": "Token revoked"}), 200
