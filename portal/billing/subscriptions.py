"""
Member- and admin-initiated subscription operations.
"""

import logging
import uuid
from datetime import datetime, timedelta

import sentry_sdk
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from portal.billing.stripe_service import StripeService
from portal.errors import NotFoundError, ValidationError
from portal.extensions import db
from portal.models.admin_activity import AdminActivityLog
from portal.models.subscription import LIVE_STATUSES, Subscription, SubscriptionStatus
from portal.models.user import User
from portal.notifications import Notification, dispatch_notification
from portal.tiers import DEFAULT_TIER, MembershipTier

logger = logging.getLogger(__name__)

MANUAL_GRANT_DAYS = 365


def list_live_subscriptions(user):
    return (
        Subscription.query
        .filter(Subscription.user_id == user.id, Subscription.status.in_(LIVE_STATUSES))
        .order_by(Subscription.created_at.desc())
        .all()
    )


def request_cancellation(user, subscription_id):
    """
    Ask Stripe to cancel one of the user's subscriptions.

    The local row is left alone; the resulting webhook cancels it.
    """
    try:
        subscription_id = int(subscription_id)
    except (TypeError, ValueError):
        raise NotFoundError("Subscription not found")

    subscription = Subscription.query.filter_by(id=subscription_id, user_id=user.id).first()
    if subscription is None:
        raise NotFoundError("Subscription not found")

    if subscription.is_canceled:
        raise ValidationError("Subscription already canceled")

    StripeService.cancel_subscription(subscription.stripe_subscription_id)
    sentry_sdk.add_breadcrumb(
        category="subscription",
        message=f"User {user.id} canceled subscription {subscription.id}",
        level="info",
    )
    logger.info(f"Cancellation requested for subscription {subscription.id} by user {user.id}")
    return subscription


# ========== ADMIN ADJUSTMENTS ==========

def _grant_tier(user, data, now):
    tier = MembershipTier.parse(data.get("tier"))
    if tier is None:
        raise ValidationError("Tier required")

    user.membership_tier = tier.value

    existing = Subscription.query.filter_by(user_id=user.id, status=SubscriptionStatus.ACTIVE.value).first()
    if existing is None:
        renewal_date = now + timedelta(days=MANUAL_GRANT_DAYS)
        if data.get("expires_at"):
            try:
                renewal_date = datetime.fromisoformat(data["expires_at"])
            except (TypeError, ValueError):
                raise ValidationError("expires_at must be an ISO 8601 date")

        db.session.add(Subscription(
            user_id=user.id,
            stripe_subscription_id=f"manual_{uuid.uuid4().hex}",
            status=SubscriptionStatus.ACTIVE.value,
            current_tier=tier.value,
            start_date=now,
            renewal_date=renewal_date,
        ))

    return {"tier": tier.value, "action": "granted"}


def _extend_subscription(user, data, now):
    days = data.get("days")
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValidationError("Days required")

    subscription = (
        Subscription.query
        .filter(Subscription.user_id == user.id, Subscription.status.in_(LIVE_STATUSES))
        .order_by(Subscription.created_at.desc())
        .first()
    )
    if subscription is None:
        raise NotFoundError("No active subscription found")

    subscription.renewal_date = (subscription.renewal_date or now) + timedelta(days=days)
    return {"renewal_date": subscription.renewal_date.isoformat(), "days_added": days}


def _cancel_subscriptions(user, data, now):
    canceled = 0
    for subscription in Subscription.query.filter(
        Subscription.user_id == user.id,
        Subscription.status.in_(LIVE_STATUSES),
    ):
        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.canceled_at = subscription.canceled_at or now
        canceled += 1

    user.membership_tier = DEFAULT_TIER.value
    return {"action": "canceled", "canceled": canceled}


def _refund(user, data, now):
    # Recorded for the audit trail; refunds themselves are issued in the Stripe dashboard
    return {"action": "refund-logged", "amount": data.get("amount", 0)}


_ADJUSTMENTS = {
    "grant-tier": _grant_tier,
    "extend-subscription": _extend_subscription,
    "cancel-subscription": _cancel_subscriptions,
    "refund": _refund,
}


def adjust_subscription(admin, user_id, action, data=None):
    """
    Apply a manual adjustment and record it in the admin activity log.

    The adjustment and its log entry commit together.
    """
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        raise ValidationError("data must be an object")
    if not user_id or not action:
        raise ValidationError("user_id and action required")

    handler = _ADJUSTMENTS.get(action)
    if handler is None:
        raise ValidationError(f"Unknown action: {action}")

    try:
        user = db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        user = None
    if user is None:
        raise NotFoundError("User not found")

    now = datetime.utcnow()
    try:
        result = handler(user, data, now)
        db.session.add(AdminActivityLog(
            admin_id=admin.id,
            action=f"MANUAL_{action.upper().replace('-', '_')}",
            target_user_id=user.id,
            details={
                "action": action,
                "data": data,
                "result": result,
                "reason": data.get("reason", "Manual adjustment"),
            },
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    sentry_sdk.capture_message(
        f"Admin {admin.id} performed manual adjustment: {action} on user {user.id}",
        level="warning",
    )
    logger.warning(f"Admin {admin.id} performed {action} on user {user.id}")
    return result


def bulk_update_tier(admin, user_ids, tier):
    """
    Set the membership tier of several users at once.

    Unknown ids are ignored. One BULK_UPDATE_TIER entry records the whole batch.
    Returns the number of users changed.
    """
    if (
        not isinstance(user_ids, list)
        or not user_ids
        or not all(isinstance(i, int) and not isinstance(i, bool) for i in user_ids)
    ):
        raise ValidationError("user_ids must be a non-empty list of ids")

    parsed = MembershipTier.parse(tier) if tier else None
    if parsed is None:
        raise ValidationError("Tier required for update-tier action")

    try:
        users = User.query.filter(User.id.in_(user_ids)).all()
        for user in users:
            user.membership_tier = parsed.value

        db.session.add(AdminActivityLog(
            admin_id=admin.id,
            action="BULK_UPDATE_TIER",
            details={
                "affected_users": sorted(user.id for user in users),
                "affected_count": len(users),
                "tier": parsed.value,
            },
        ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    sentry_sdk.add_breadcrumb(
        category="admin",
        message=f"Bulk update-tier performed on {len(users)} users",
        level="warning",
        data={"admin_id": admin.id, "tier": parsed.value},
    )
    logger.warning(f"Admin {admin.id} set tier {parsed.value} on {len(users)} users")
    return len(users)


# ========== RENEWAL REMINDERS ==========

def send_renewal_reminders(now=None, days=None):
    """
    Queue a reminder for each active subscription renewing soon that has not had one.

    A failure on one subscription does not stop the others.
    """
    now = now or datetime.utcnow()
    days = days if days is not None else current_app.config.get("RENEWAL_REMINDER_DAYS", 7)
    horizon = now + timedelta(days=days)

    due = (
        Subscription.query
        .filter(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.renewal_date.isnot(None),
            Subscription.renewal_date > now,
            Subscription.renewal_date <= horizon,
            Subscription.reminder_sent_at.is_(None),
        )
        .all()
    )

    sent = 0
    failed = 0
    for subscription in due:
        try:
            queued = dispatch_notification(Notification(
                "renewal_reminder",
                subscription.user_id,
                {
                    "tier": subscription.current_tier,
                    "renewal_date": subscription.renewal_date.isoformat(),
                },
            ))
            if not queued:
                failed += 1
                continue
            subscription.reminder_sent_at = now
            db.session.commit()
            sent += 1
        except SQLAlchemyError as e:
            db.session.rollback()
            failed += 1
            logger.error(f"Failed to record renewal reminder for subscription {subscription.id}: {e}")

    logger.info(f"Renewal reminders: {sent} sent, {failed} failed, {len(due)} due")
    return {"total": len(due), "sent": sent, "failed": failed}
