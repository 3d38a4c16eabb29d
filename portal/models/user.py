from datetime import datetime

from werkzeug.security import check_password_hash, generate_password_hash

from portal.extensions import db
from portal.tiers import DEFAULT_TIER, MembershipTier


class User(db.Model):
    __tablename__ = "users"

    # ========== IDENTIFICATION ==========
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    avatar_url = db.Column(db.String(512), nullable=True)

    # ========== MEMBERSHIP & BILLING ==========
    membership_tier = db.Column(db.String(20), nullable=False, default=DEFAULT_TIER.value, index=True)
    stripe_customer_id = db.Column(db.String(255), unique=True, nullable=True)

    # ========== TIMESTAMPS ==========
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # ========== RELATIONSHIPS ==========
    subscriptions = db.relationship(
        "Subscription",
        back_populates="user",
        lazy="dynamic",
        order_by="desc(Subscription.created_at)",
    )
    api_tokens = db.relationship(
        "ApiToken",
        back_populates="user",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def tier(self):
        """Membership tier as an enum; unknown stored values read as the default tier."""
        return MembershipTier.parse(self.membership_tier) or DEFAULT_TIER

    @property
    def is_admin(self):
        return self.tier == MembershipTier.ADMIN

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "membership_tier": self.membership_tier,
            "avatar_url": self.avatar_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id} {self.email} tier={self.membership_tier}>"
