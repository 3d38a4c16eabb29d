# portal/extensions.py
"""
Flask extensions initialization module.
Extensions are created unbound here and attached to the app in init_extensions.
"""

import logging

import redis
from flask import jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Initialize extensions
db = SQLAlchemy()
jwt = JWTManager()
cors = CORS()
migrate = Migrate()
mail = Mail()
redis_client = None

logger = logging.getLogger(__name__)


def init_extensions(app):
    """Initialize all Flask extensions."""

    db.init_app(app)
    migrate.init_app(app, db)
    logger.info("SQLAlchemy and Flask-Migrate initialized")

    jwt.init_app(app)
    setup_jwt_callbacks()
    logger.info("JWT manager initialized")

    cors.init_app(
        app,
        origins=app.config.get("CORS_ORIGINS", []),
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    mail.init_app(app)

    if app.config.get("RATE_LIMIT_STORAGE") == "redis":
        init_redis(app)

    return app


def init_redis(app):
    """Initialize the shared Redis connection used by the distributed rate-limit store."""
    global redis_client

    redis_url = app.config.get("REDIS_URL", "redis://localhost:6379/0")
    redis_client = redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )

    try:
        redis_client.ping()
        logger.info("Redis initialized successfully")
    except redis.ConnectionError as e:
        logger.error(f"Failed to connect to Redis: {e}")
        if app.config.get("ENV") == "production":
            raise

    return redis_client


def get_redis_client():
    """Get Redis client instance, or None when Redis is not configured."""
    return redis_client


def setup_jwt_callbacks():
    """Resolve session identities to users and render JWT failures as JSON 401s."""

    @jwt.user_lookup_loader
    def load_user(jwt_header, jwt_payload):
        from portal.models.user import User

        return db.session.get(User, int(jwt_payload["sub"]))

    @jwt.user_lookup_error_loader
    def user_not_found(jwt_header, jwt_payload):
        return jsonify({
            "error": "unauthorized",
            "message": "User not found",
            "code": "USER_NOT_FOUND",
        }), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({
            "error": "unauthorized",
            "message": "Session has expired. Please log in again.",
            "code": "SESSION_EXPIRED",
        }), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({
            "error": "unauthorized",
            "message": "Invalid session token",
            "code": "INVALID_SESSION",
        }), 401

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({
            "error": "unauthorized",
            "message": "Authentication required",
            "code": "AUTH_REQUIRED",
        }), 401


__all__ = [
    "db", "jwt", "cors", "migrate", "mail", "redis_client",
    "init_extensions", "init_redis", "get_redis_client",
]
