from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from portal.errors import AuthenticationError, AuthorizationError, RateLimitExceeded
from portal.extensions import db
from portal.security.authorizer import TokenAuthorizer, purge_expired_tokens
from portal.security.rate_limiter import FixedWindowRateLimiter, InMemoryRateLimitStore, RateLimitConfig
from portal.security.tokens import hash_token, token_lookup_key, verify_token_hash
from portal.models.api_token import ApiToken


@pytest.fixture
def authorizer(limiter):
    return TokenAuthorizer(limiter)


def test_valid_token_returns_identity(authorizer, make_user, make_api_token):
    user = make_user(tier="tier2")
    plaintext, api_token = make_api_token(user, ["read:profile"])

    identity = authorizer.authorize(f"Bearer {plaintext}", "read:profile")

    assert identity.user_id == user.id
    assert identity.token_id == api_token.id
    assert identity.scopes == ["read:profile"]
    assert identity.tier.value == "tier2"
    assert identity.rate_limit.remaining == 99


def test_successful_use_updates_last_used_at(authorizer, make_user, make_api_token):
    user = make_user()
    plaintext, api_token = make_api_token(user, ["read:profile"])
    assert api_token.last_used_at is None

    authorizer.authorize(f"Bearer {plaintext}", "read:profile")

    db.session.refresh(api_token)
    assert api_token.last_used_at is not None


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer "])
def test_missing_or_malformed_header(authorizer, header):
    with pytest.raises(AuthenticationError):
        authorizer.authorize(header, "read:profile")


def test_unknown_token(authorizer, make_user, make_api_token):
    make_api_token(make_user(), ["read:profile"])

    with pytest.raises(AuthenticationError):
        authorizer.authorize("Bearer mre_" + "0" * 64, "read:profile")


def test_unknown_token_skips_hash_verification(authorizer, make_user, make_api_token):
    for _ in range(5):
        make_api_token(make_user(), ["read:profile"])

    with patch("portal.security.authorizer.verify_token_hash") as verify, pytest.raises(AuthenticationError):
        authorizer.authorize("Bearer mre_" + "0" * 64, "read:profile")

    verify.assert_not_called()


def test_only_rows_sharing_the_lookup_key_are_verified(authorizer, make_user, make_api_token):
    plaintext, _ = make_api_token(make_user(), ["read:profile"])
    twin = plaintext[:16] + ("f" if plaintext[16] != "f" else "e") + plaintext[17:]
    twin_token = ApiToken(
        user_id=make_user().id,
        name="twin",
        token_lookup=token_lookup_key(twin),
        token_hash=hash_token(twin),
        scopes=["read:profile"],
    )
    db.session.add(twin_token)
    db.session.commit()

    with patch("portal.security.authorizer.verify_token_hash", wraps=verify_token_hash) as verify:
        identity = authorizer.authorize(f"Bearer {twin}", "read:profile")

    assert identity.token_id == twin_token.id
    assert verify.call_count <= 2


def test_expired_token(authorizer, make_user, make_api_token):
    plaintext, _ = make_api_token(
        make_user(), ["read:profile"], expires_at=datetime.utcnow() - timedelta(minutes=1)
    )

    with pytest.raises(AuthenticationError) as exc:
        authorizer.authorize(f"Bearer {plaintext}", "read:profile")
    assert exc.value.message == "Token expired"


def test_namespace_wildcard_grants_specific_scope(authorizer, make_user, make_api_token):
    plaintext, _ = make_api_token(make_user(tier="tier4"), ["read:*"])

    identity = authorizer.authorize(f"Bearer {plaintext}", "read:invoices")
    assert identity.scopes == ["read:*"]


def test_missing_scope_is_forbidden(authorizer, make_user, make_api_token):
    plaintext, _ = make_api_token(make_user(tier="tier3"), ["read:profile"])

    with pytest.raises(AuthorizationError):
        authorizer.authorize(f"Bearer {plaintext}", "write:subscriptions")


def test_downgraded_owner_loses_elevated_scopes(authorizer, make_user, make_api_token):
    user = make_user(tier="tier3")
    plaintext, _ = make_api_token(user, ["read:profile", "write:subscriptions"])

    user.membership_tier = "tier1"
    db.session.commit()

    with pytest.raises(AuthorizationError):
        authorizer.authorize(f"Bearer {plaintext}", "write:subscriptions")
    assert authorizer.authorize(f"Bearer {plaintext}", "read:profile").user_id == user.id


def test_rate_limit_keyed_by_token(make_user, make_api_token):
    limiter = FixedWindowRateLimiter(
        InMemoryRateLimitStore(),
        configs={"default": RateLimitConfig(2, 60_000)},
    )
    authorizer = TokenAuthorizer(limiter)
    user = make_user()
    first, _ = make_api_token(user, ["read:profile"])
    second, _ = make_api_token(user, ["read:profile"])

    authorizer.authorize(f"Bearer {first}", "read:profile")
    authorizer.authorize(f"Bearer {first}", "read:profile")
    with pytest.raises(RateLimitExceeded) as exc:
        authorizer.authorize(f"Bearer {first}", "read:profile")

    assert exc.value.result.remaining == 0
    assert exc.value.retry_after_seconds >= 1
    assert authorizer.authorize(f"Bearer {second}", "read:profile")


def test_purge_expired_tokens(make_user, make_api_token):
    user = make_user()
    make_api_token(user, ["read:profile"], expires_at=datetime.utcnow() - timedelta(days=1))
    make_api_token(user, ["read:profile"], expires_at=datetime.utcnow() + timedelta(days=1))
    make_api_token(user, ["read:profile"])

    assert purge_expired_tokens() == 1
    assert ApiToken.query.count() == 2
