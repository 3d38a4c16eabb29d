"""
API token scopes and the tier policy that bounds them.

Scopes are ``<namespace>:<action>`` strings. ``<namespace>:*`` grants every
action in a namespace, ``*`` and ``admin:*`` grant everything.
"""

from collections import namedtuple

from portal.tiers import MembershipTier

AVAILABLE_SCOPES = {
    "read:profile": "Read your profile information",
    "read:subscriptions": "Read your subscriptions",
    "read:invoices": "Read your invoices",
    "write:profile": "Update your profile",
    "write:subscriptions": "Manage your subscriptions",
    "admin:users": "Manage users",
    "admin:stats": "Read platform statistics",
    "admin:impersonate": "Act on behalf of other users",
    "read:*": "Read everything",
    "write:*": "Write everything",
    "admin:*": "Full administrative access",
    "*": "Full access",
}

TIER_SCOPES = {
    MembershipTier.ADMIN: ["*"],
    MembershipTier.TIER4: ["read:*", "write:*"],
    MembershipTier.TIER3: [
        "read:profile",
        "read:subscriptions",
        "read:invoices",
        "write:profile",
        "write:subscriptions",
    ],
    MembershipTier.TIER2: [
        "read:profile",
        "read:subscriptions",
        "write:profile",
    ],
    MembershipTier.TIER1: ["read:profile"],
    MembershipTier.FREE: ["read:profile"],
}

DEFAULT_SCOPES = ["read:profile"]

ScopeValidation = namedtuple("ScopeValidation", ["valid", "invalid_scopes"])


def is_known_scope(scope) -> bool:
    return scope in AVAILABLE_SCOPES


def has_scope(held_scopes, required_scope) -> bool:
    held = set(held_scopes or [])

    if "*" in held or "admin:*" in held:
        return True

    if required_scope in held:
        return True

    namespace = required_scope.split(":", 1)[0]
    return f"{namespace}:*" in held


def allowed_scopes_for_tier(tier):
    parsed = MembershipTier.parse(tier)
    return list(TIER_SCOPES.get(parsed, DEFAULT_SCOPES))


def validate_scopes(requested_scopes, tier) -> ScopeValidation:
    """
    Check that every requested scope is within what ``tier`` may hold.

    Admins may request any scope.
    """
    if MembershipTier.parse(tier) == MembershipTier.ADMIN:
        return ScopeValidation(valid=True, invalid_scopes=[])

    allowed = allowed_scopes_for_tier(tier)
    invalid = [scope for scope in requested_scopes if not has_scope(allowed, scope)]
    return ScopeValidation(valid=not invalid, invalid_scopes=invalid)


def tier_permits(tier, required_scope) -> bool:
    return has_scope(allowed_scopes_for_tier(tier), required_scope)
