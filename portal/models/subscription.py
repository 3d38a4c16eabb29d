# subscription.py
from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Index

from portal.extensions import db


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


# Stripe reports a wider status vocabulary than the portal tracks
PROVIDER_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}

LIVE_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAST_DUE.value)


def map_provider_status(provider_status):
    return PROVIDER_STATUS_MAP.get((provider_status or "").lower())


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Provider linkage
    stripe_subscription_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    stripe_customer_id = db.Column(db.String(255), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    current_tier = db.Column(db.String(20), nullable=False)

    start_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    renewal_date = db.Column(db.DateTime, nullable=True, index=True)
    canceled_at = db.Column(db.DateTime, nullable=True)
    reminder_sent_at = db.Column(db.DateTime, nullable=True)

    # Provider timestamp of the event that last wrote ``status``
    status_event_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="subscriptions")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'past_due', 'canceled')",
            name="valid_subscription_status",
        ),
        Index("idx_subscription_user_status", "user_id", "status"),
        Index("idx_subscription_renewal_status", "renewal_date", "status"),
    )

    @classmethod
    def find_by_external_id(cls, stripe_subscription_id):
        if not stripe_subscription_id:
            return None
        return cls.query.filter_by(stripe_subscription_id=stripe_subscription_id).first()

    @property
    def is_live(self):
        return self.status in LIVE_STATUSES

    @property
    def is_canceled(self):
        return self.status == SubscriptionStatus.CANCELED.value

    def accepts_status_event(self, event_at):
        """
        True when an event created at ``event_at`` is not older than the
        event that last set the status. Events without a timestamp always apply.
        """
        if event_at is None or self.status_event_at is None:
            return True
        return event_at >= self.status_event_at

    def record_status_event(self, event_at):
        if event_at is not None and (self.status_event_at is None or event_at > self.status_event_at):
            self.status_event_at = event_at

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "current_tier": self.current_tier,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "renewal_date": self.renewal_date.isoformat() if self.renewal_date else None,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Subscription {self.stripe_subscription_id} user={self.user_id} status={self.status}>"
