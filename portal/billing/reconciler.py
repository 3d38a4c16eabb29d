"""
Keeps users' membership tiers and subscription rows in line with Stripe.

Stripe delivers webhooks at least once and in no particular order, so every
transition writes absolute values taken from the event. Replaying an event,
or delivering a set of events in a different order, converges on the same
state. All writes for one event commit together with the ledger row; emails
are queued only after that commit.
"""

import logging
from collections import namedtuple
from datetime import datetime, timezone

import sentry_sdk
from flask import current_app
from sqlalchemy.exc import IntegrityError

from portal.extensions import db
from portal.models.subscription import LIVE_STATUSES, Subscription, SubscriptionStatus, map_provider_status
from portal.models.user import User
from portal.models.webhook_event import WebhookEvent
from portal.notifications import Notification, dispatch_notifications
from portal.tiers import DEFAULT_TIER, PAID_TIERS, MembershipTier

logger = logging.getLogger(__name__)

ReconcileResult = namedtuple(
    "ReconcileResult",
    ["event_id", "event_type", "handled", "changed", "duplicate"],
)


class ReconcileSkipped(Exception):
    """A precondition failed permanently; the event is acknowledged without changes."""


def _from_timestamp(value):
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _invoice_subscription_id(invoice):
    subscription_id = invoice.get("subscription")
    if isinstance(subscription_id, dict):
        subscription_id = subscription_id.get("id")
    if subscription_id:
        return subscription_id
    # Newer API versions nest it under the invoice parent
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription")


def _invoice_period_end(invoice):
    lines = (invoice.get("lines") or {}).get("data") or []
    for line in lines:
        period_end = (line.get("period") or {}).get("end")
        if period_end:
            return _from_timestamp(period_end)
    return _from_timestamp(invoice.get("period_end"))


def _subscription_period_end(subscription):
    if subscription.get("current_period_end"):
        return _from_timestamp(subscription["current_period_end"])
    for item in (subscription.get("items") or {}).get("data") or []:
        if item.get("current_period_end"):
            return _from_timestamp(item["current_period_end"])
    return None


def _subscription_price_id(subscription):
    for item in (subscription.get("items") or {}).get("data") or []:
        price = item.get("price") or {}
        if price.get("id"):
            return price["id"]
    return None


class _Effects:
    """Side effects collected while handling, released after commit."""

    def __init__(self):
        self.notifications = []
        self.alerts = []

    def notify(self, kind, user_id, **context):
        self.notifications.append(Notification(kind, user_id, context))

    def alert(self, message):
        self.alerts.append(message)


class SubscriptionReconciler:
    def __init__(self, price_tiers=None, clock=None, dispatcher=None):
        if price_tiers is None:
            price_tiers = {
                price_id: tier
                for tier, price_id in current_app.config.get("STRIPE_PRICE_IDS", {}).items()
                if price_id
            }
        self.price_tiers = price_tiers
        self.clock = clock or datetime.utcnow
        self.dispatcher = dispatcher or dispatch_notifications

        self._handlers = {
            "checkout.session.completed": self._handle_checkout_completed,
            "invoice.payment_succeeded": self._handle_payment_succeeded,
            "invoice.paid": self._handle_payment_succeeded,
            "invoice.payment_failed": self._handle_payment_failed,
            "customer.subscription.updated": self._handle_subscription_updated,
            "customer.subscription.deleted": self._handle_subscription_deleted,
        }

    def reconcile(self, event) -> ReconcileResult:
        event_id = event.get("id")
        event_type = event.get("type")
        log_extra = {"event_id": event_id, "event_type": event_type}

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled event type: {event_type}", extra=log_extra)
            return ReconcileResult(event_id, event_type, handled=False, changed=False, duplicate=False)

        if WebhookEvent.is_processed(event_id):
            logger.info("Duplicate webhook event acknowledged", extra=log_extra)
            return ReconcileResult(event_id, event_type, handled=True, changed=False, duplicate=True)

        obj = (event.get("data") or {}).get("object") or {}
        event_at = _from_timestamp(event.get("created"))
        effects = _Effects()

        try:
            changed = handler(obj, event_at, effects)
            if event_id:
                db.session.add(WebhookEvent(
                    id=event_id,
                    event_type=event_type,
                    processed_at=self.clock(),
                ))
            db.session.commit()
        except ReconcileSkipped as e:
            db.session.rollback()
            logger.warning(f"Webhook event skipped: {e}", extra=log_extra)
            return ReconcileResult(event_id, event_type, handled=True, changed=False, duplicate=False)
        except IntegrityError:
            db.session.rollback()
            # A concurrent delivery of the same event committed first
            if WebhookEvent.is_processed(event_id):
                logger.info("Concurrent duplicate webhook event acknowledged", extra=log_extra)
                return ReconcileResult(event_id, event_type, handled=True, changed=False, duplicate=True)
            raise
        except Exception:
            db.session.rollback()
            raise

        for message in effects.alerts:
            sentry_sdk.capture_message(message, level="warning")
        self.dispatcher(effects.notifications)

        logger.info("Webhook event reconciled", extra={**log_extra, "changed": changed})
        return ReconcileResult(event_id, event_type, handled=True, changed=changed, duplicate=False)

    # ========== HANDLERS ==========

    def _handle_checkout_completed(self, session, event_at, effects):
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        tier_id = metadata.get("tierId")
        if not user_id or not tier_id:
            raise ReconcileSkipped(f"Checkout session {session.get('id')} is missing userId/tierId metadata")

        tier = MembershipTier.parse(tier_id)
        if tier not in PAID_TIERS:
            raise ReconcileSkipped(f"Checkout session {session.get('id')} names unknown tier {tier_id!r}")

        try:
            user = db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            user = None
        if user is None:
            raise ReconcileSkipped(f"Checkout session {session.get('id')} names unknown user {user_id!r}")

        stripe_subscription_id = session.get("subscription")
        if isinstance(stripe_subscription_id, dict):
            stripe_subscription_id = stripe_subscription_id.get("id")
        if not stripe_subscription_id:
            raise ReconcileSkipped(f"Checkout session {session.get('id')} has no subscription")

        changed = False
        customer_id = session.get("customer")
        if customer_id and not user.stripe_customer_id:
            user.stripe_customer_id = customer_id
            changed = True

        subscription = Subscription.find_by_external_id(stripe_subscription_id)
        if subscription is None:
            subscription = Subscription(
                user_id=user.id,
                stripe_subscription_id=stripe_subscription_id,
                stripe_customer_id=customer_id,
                status=SubscriptionStatus.ACTIVE.value,
                current_tier=tier.value,
                start_date=self.clock(),
                status_event_at=event_at,
            )
            db.session.add(subscription)
            changed = True
            logger.info(f"Subscription {stripe_subscription_id} created for user {user.id} on {tier.value}")

        # A later cancellation already won; replaying checkout must not regrant
        if subscription.is_canceled:
            return changed

        if self._set_user_tier(user, tier):
            changed = True
        return changed

    def _handle_payment_succeeded(self, invoice, event_at, effects):
        subscription = self._require_subscription(_invoice_subscription_id(invoice), "Invoice", invoice)

        if subscription.is_canceled:
            return False

        changed = False

        # The period end only moves forward, whatever order invoices arrive in
        period_end = _invoice_period_end(invoice)
        if period_end and (subscription.renewal_date is None or period_end > subscription.renewal_date):
            subscription.renewal_date = period_end
            # New billing period, so a new reminder is due before it ends
            subscription.reminder_sent_at = None
            changed = True

        if subscription.accepts_status_event(event_at):
            if subscription.status != SubscriptionStatus.ACTIVE.value:
                subscription.status = SubscriptionStatus.ACTIVE.value
                changed = True
            subscription.record_status_event(event_at)

        if changed:
            effects.notify(
                "payment_receipt",
                subscription.user_id,
                tier=subscription.current_tier,
                amount=(invoice.get("amount_paid") or 0) / 100,
                invoice_url=invoice.get("hosted_invoice_url"),
            )
        return changed

    def _handle_payment_failed(self, invoice, event_at, effects):
        stripe_subscription_id = _invoice_subscription_id(invoice)
        subscription = self._require_subscription(stripe_subscription_id, "Invoice", invoice)

        effects.alert(f"Payment failed for subscription {stripe_subscription_id}")

        if subscription.is_canceled or not subscription.accepts_status_event(event_at):
            return False

        changed = subscription.status != SubscriptionStatus.PAST_DUE.value
        subscription.status = SubscriptionStatus.PAST_DUE.value
        subscription.record_status_event(event_at)

        if changed:
            effects.notify(
                "payment_failed",
                subscription.user_id,
                tier=subscription.current_tier,
                amount=(invoice.get("amount_due") or 0) / 100,
            )
        return changed

    def _handle_subscription_updated(self, remote, event_at, effects):
        subscription = self._require_subscription(remote.get("id"), "Subscription", remote)

        if subscription.is_canceled or not subscription.accepts_status_event(event_at):
            return False

        status = map_provider_status(remote.get("status"))
        if status is None:
            logger.warning(f"Unknown provider status {remote.get('status')!r} for {subscription.stripe_subscription_id}")
            status = SubscriptionStatus(subscription.status)

        if status == SubscriptionStatus.CANCELED:
            canceled_at = _from_timestamp(remote.get("canceled_at") or remote.get("ended_at"))
            return self._cancel(subscription, canceled_at, event_at, effects)

        before = (subscription.status, subscription.renewal_date, subscription.canceled_at, subscription.current_tier)

        subscription.status = status.value
        subscription.renewal_date = _subscription_period_end(remote) or subscription.renewal_date
        # Set while a cancellation is scheduled for the period end, cleared if it is withdrawn
        subscription.canceled_at = _from_timestamp(remote.get("canceled_at"))
        subscription.record_status_event(event_at)

        tier = self._tier_for_price(_subscription_price_id(remote))
        if tier is not None:
            subscription.current_tier = tier.value
            self._set_user_tier(subscription.user, tier)

        after = (subscription.status, subscription.renewal_date, subscription.canceled_at, subscription.current_tier)
        return before != after

    def _handle_subscription_deleted(self, remote, event_at, effects):
        subscription = self._require_subscription(remote.get("id"), "Subscription", remote)
        canceled_at = _from_timestamp(remote.get("canceled_at") or remote.get("ended_at"))
        return self._cancel(subscription, canceled_at, event_at, effects)

    # ========== HELPERS ==========

    def _require_subscription(self, stripe_subscription_id, kind, obj):
        subscription = Subscription.find_by_external_id(stripe_subscription_id)
        if subscription is None:
            raise ReconcileSkipped(
                f"{kind} {obj.get('id')} references unknown subscription {stripe_subscription_id!r}"
            )
        return subscription

    def _tier_for_price(self, price_id):
        if not price_id or price_id not in self.price_tiers:
            return None
        return MembershipTier.parse(self.price_tiers[price_id])

    def _set_user_tier(self, user, tier):
        # Admin access is granted by hand, never by billing
        if user.is_admin or user.membership_tier == tier.value:
            return False
        logger.info(f"User {user.id} tier {user.membership_tier} -> {tier.value}")
        user.membership_tier = tier.value
        return True

    def _cancel(self, subscription, canceled_at, event_at, effects):
        """Move a subscription into the terminal canceled state."""
        transitioned = not subscription.is_canceled

        subscription.status = SubscriptionStatus.CANCELED.value
        if subscription.canceled_at is None:
            subscription.canceled_at = canceled_at or self.clock()
        subscription.record_status_event(event_at)

        user = subscription.user
        other_live = (
            Subscription.query
            .filter(
                Subscription.user_id == user.id,
                Subscription.id != subscription.id,
                Subscription.status.in_(LIVE_STATUSES),
            )
            .count()
        )
        downgraded = False
        if not other_live:
            downgraded = self._set_user_tier(user, DEFAULT_TIER)

        if transitioned:
            access_until = subscription.renewal_date or subscription.canceled_at
            effects.notify(
                "subscription_canceled",
                user.id,
                tier=subscription.current_tier,
                access_until=access_until.isoformat() if access_until else None,
            )
            logger.info(f"Subscription {subscription.stripe_subscription_id} canceled")

        return transitioned or downgraded
