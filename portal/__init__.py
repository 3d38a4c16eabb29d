"""
Flask application factory for the membership portal billing and access service.
"""

import logging

import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration
from werkzeug.middleware.proxy_fix import ProxyFix

from portal.config import get_config
from portal.error_handlers import register_error_handlers
from portal.extensions import get_redis_client, init_extensions
from portal.logging_config import setup_logging
from portal.middleware import init_request_id_middleware
from portal.security.rate_limiter import init_rate_limiter
from portal.workers.celery_app import init_celery

logger = logging.getLogger(__name__)


def setup_sentry(app):
    """Initialize Sentry error tracking when a DSN is configured"""
    sentry_dsn = app.config.get("SENTRY_DSN")
    if not sentry_dsn:
        return

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.0),
        environment=app.config.get("ENV"),
        release=app.config.get("APP_VERSION"),
        send_default_pii=False,
    )
    logger.info("Sentry error tracking initialized")


def register_blueprints(app):
    from portal.health import health_bp
    from portal.routes.admin import bp as admin_bp
    from portal.routes.api_v1 import bp as api_v1_bp
    from portal.routes.auth import bp as auth_bp
    from portal.routes.billing import bp as billing_bp
    from portal.routes.scheduled import bp as scheduled_bp
    from portal.routes.tokens import bp as tokens_bp
    from portal.routes.webhooks import bp as webhooks_bp

    for blueprint in (
        health_bp,
        auth_bp,
        tokens_bp,
        api_v1_bp,
        webhooks_bp,
        billing_bp,
        admin_bp,
        scheduled_bp,
    ):
        app.register_blueprint(blueprint)


def create_app(config_name=None):
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    proxy_count = app.config.get("TRUSTED_PROXY_COUNT", 0)
    if proxy_count:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxy_count, x_proto=proxy_count)

    setup_logging(app)
    setup_sentry(app)

    init_extensions(app)
    init_request_id_middleware(app)
    init_rate_limiter(app, redis_client=get_redis_client())
    init_celery(app)

    register_error_handlers(app)
    register_blueprints(app)

    # Importing models registers their tables on the metadata
    from portal import models  # noqa: F401

    logger.info(f"Application created ({app.config.get('ENV')})")
    return app
