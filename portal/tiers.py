from enum import Enum


class MembershipTier(str, Enum):
    FREE = "free"
    TIER1 = "tier1"
    TIER2 = "tier2"
    TIER3 = "tier3"
    TIER4 = "tier4"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value):
        """Return the tier for ``value`` or None when it is not a known tier."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return None


# Lowest free tier: default for new users and the downgrade target on cancellation
DEFAULT_TIER = MembershipTier.TIER1

# Tiers that can be bought through checkout
PAID_TIERS = (MembershipTier.TIER2, MembershipTier.TIER3, MembershipTier.TIER4)

TIER_DISPLAY_NAMES = {
    MembershipTier.FREE: "Free Tier",
    MembershipTier.TIER1: "Free Tier",
    MembershipTier.TIER2: "Pro",
    MembershipTier.TIER3: "Premium",
    MembershipTier.TIER4: "Enterprise",
    MembershipTier.ADMIN: "Administrator",
}

TIER_MONTHLY_AMOUNTS = {
    MembershipTier.FREE: 0.0,
    MembershipTier.TIER1: 0.0,
    MembershipTier.TIER2: 9.99,
    MembershipTier.TIER3: 19.99,
    MembershipTier.TIER4: 49.99,
    MembershipTier.ADMIN: 0.0,
}


def tier_display_name(tier):
    parsed = MembershipTier.parse(tier)
    if parsed is None:
        return str(tier)
    return TIER_DISPLAY_NAMES[parsed]


def tier_monthly_amount(tier):
    parsed = MembershipTier.parse(tier)
    return TIER_MONTHLY_AMOUNTS.get(parsed, 0.0)
