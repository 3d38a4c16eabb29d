# portal/error_handlers.py
import logging

import sentry_sdk
from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from portal.errors import AppError, RateLimitExceeded
from portal.security.rate_limiter import apply_rate_limit_headers

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register all error handlers for the application"""

    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            logger.error(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")
        else:
            logger.warning(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")

        response = jsonify(error.to_dict())
        response.status_code = error.status_code

        if isinstance(error, RateLimitExceeded):
            apply_rate_limit_headers(response, error.result)
            response.headers["Retry-After"] = str(error.retry_after_seconds)

        return response

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """
        Handles known HTTP errors (404, 405, 415, ...)
        """
        if e.code >= 500:
            logger.error(f"HTTP {e.code}: {e.description} - Path: {request.path}")
        else:
            logger.info(f"HTTP {e.code}: {request.method} {request.path}")

        return jsonify({
            "error": e.name,
            "message": e.description,
            "code": e.name.upper().replace(" ", "_"),
        }), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        """
        Handles all unexpected server errors.
        Never echoes internal details to the client.
        """
        logger.exception(f"Unhandled exception - Path: {request.path}")
        sentry_sdk.capture_exception(e)

        return jsonify({
            "error": "Internal server error",
            "message": "Something went wrong. Please try again later.",
            "code": "INTERNAL_ERROR",
        }), 500
