from datetime import datetime, timezone
from functools import wraps

from flask import current_app, g, make_response, request

from portal.errors import RateLimitExceeded


def get_rate_limiter():
    return current_app.extensions["rate_limiter"]


def apply_rate_limit_headers(response, result):
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    response.headers["X-RateLimit-Reset"] = (
        datetime.fromtimestamp(result.reset_at_ms / 1000, tz=timezone.utc).isoformat()
    )
    return response


def _remote_addr():
    # Proxy headers are only honoured through ProxyFix (TRUSTED_PROXY_COUNT)
    return request.remote_addr or "unknown"


def rate_limit(config_name="default", key_func=None):
    """
    Decorator applying a fixed-window limit to a route.

    Usage:
        @bp.route("/api/checkout", methods=["POST"])
        @jwt_required()
        @rate_limit("strict", key_func=lambda: current_user.email)
        def create_checkout():
            ...

    ``key_func`` defaults to the client address. The endpoint name is part of
    the key so limits on different routes do not share a window.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            limiter = get_rate_limiter()
            identifier = key_func() if key_func else _remote_addr()
            result = limiter.check(f"{request.endpoint}:{identifier}", limiter.get_config(config_name))

            if not result.allowed:
                raise RateLimitExceeded(result)

            g.rate_limit = result
            response = make_response(f(*args, **kwargs))
            return apply_rate_limit_headers(response, result)

        return decorated_function

    return decorator
