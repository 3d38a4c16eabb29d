"""
Bearer-token authorization for the public API.

A request is admitted when, in order: the bearer token matches a stored hash
(candidates are found through the token's lookup key), the token has not
expired, both the token's scopes and the owner's current tier allow the
required scope, and the token is within its rate limit.
"""

import logging
from collections import namedtuple
from datetime import datetime
from functools import wraps

from flask import g, make_response, request
from sqlalchemy.exc import SQLAlchemyError

from portal.errors import AuthenticationError, AuthorizationError, RateLimitExceeded
from portal.extensions import db
from portal.models.api_token import ApiToken
from portal.security.rate_limiter import apply_rate_limit_headers, get_rate_limiter
from portal.security.scopes import has_scope, tier_permits
from portal.security.tokens import extract_bearer_token, token_lookup_key, verify_token_hash

logger = logging.getLogger(__name__)

AuthorizedToken = namedtuple(
    "AuthorizedToken",
    ["user_id", "token_id", "scopes", "tier", "rate_limit"],
    defaults=(None,),
)


class TokenAuthorizer:
    def __init__(self, limiter, clock=None):
        self.limiter = limiter
        self.clock = clock or datetime.utcnow

    def authenticate(self, authorization_header) -> ApiToken:
        token = extract_bearer_token(authorization_header)
        if token is None:
            raise AuthenticationError("Missing or invalid authorization header")

        lookup = token_lookup_key(token)
        candidates = ApiToken.query.filter_by(token_lookup=lookup).all() if lookup else []

        # Lookup keys may collide; the hash decides
        for api_token in candidates:
            if verify_token_hash(token, api_token.token_hash):
                return api_token

        raise AuthenticationError("Invalid token")

    def authorize(self, authorization_header, required_scope=None) -> AuthorizedToken:
        api_token = self.authenticate(authorization_header)
        now = self.clock()

        if api_token.is_expired(now):
            raise AuthenticationError("Token expired")

        owner = api_token.user
        scopes = list(api_token.scopes or [])

        if required_scope:
            if not has_scope(scopes, required_scope):
                logger.info(
                    "Token lacks required scope",
                    extra={"token_id": api_token.id, "required_scope": required_scope},
                )
                raise AuthorizationError(
                    f"Missing required scope: {required_scope}",
                    payload={"required_scope": required_scope},
                )
            # A downgraded owner keeps the token but loses the elevated scopes
            if not tier_permits(owner.tier, required_scope):
                logger.info(
                    "Token owner's tier no longer permits scope",
                    extra={"token_id": api_token.id, "tier": owner.membership_tier, "required_scope": required_scope},
                )
                raise AuthorizationError(
                    f"Your membership tier does not include {required_scope}",
                    payload={"required_scope": required_scope},
                )

        result = self.limiter.check(f"token:{api_token.id}", self.limiter.get_config("default"))
        if not result.allowed:
            raise RateLimitExceeded(result)

        try:
            api_token.last_used_at = now
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        return AuthorizedToken(
            user_id=api_token.user_id,
            token_id=api_token.id,
            scopes=scopes,
            tier=owner.tier,
            rate_limit=result,
        )


def require_api_token(scope=None):
    """
    Route decorator for token-protected endpoints.

    The authorized identity is available as ``g.api_token``.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            authorizer = TokenAuthorizer(get_rate_limiter())
            identity = authorizer.authorize(request.headers.get("Authorization"), scope)
            g.api_token = identity

            response = make_response(f(*args, **kwargs))
            return apply_rate_limit_headers(response, identity.rate_limit)

        return decorated_function

    return decorator


def purge_expired_tokens(now=None):
    """Hard-delete expired tokens. Returns the number removed."""
    now = now or datetime.utcnow()
    try:
        removed = ApiToken.query.filter(
            ApiToken.expires_at.isnot(None),
            ApiToken.expires_at <= now,
        ).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    if removed:
        logger.info(f"Purged {removed} expired API tokens")
    return removed
