# portal/billing/stripe_service.py
import logging

import sentry_sdk
import stripe
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from portal.errors import PaymentProviderError, ValidationError
from portal.extensions import db
from portal.tiers import PAID_TIERS, MembershipTier

logger = logging.getLogger(__name__)


class StripeService:
    """Outbound calls to Stripe. Local state changes arrive through webhooks."""

    @staticmethod
    def _configure():
        api_key = current_app.config.get("STRIPE_SECRET_KEY")
        if not api_key:
            logger.error("Stripe misconfigured - missing STRIPE_SECRET_KEY")
            raise PaymentProviderError("Payments are not configured")
        stripe.api_key = api_key

    @staticmethod
    def price_for_tier(tier_id):
        """
        Resolve a tier id to its configured Stripe price.

        Raises:
            ValidationError: unknown tier, or a tier with no price configured
        """
        tier = MembershipTier.parse(tier_id)
        if tier not in PAID_TIERS:
            raise ValidationError("Tier not available", payload={"tier_id": tier_id})

        price_id = current_app.config.get("STRIPE_PRICE_IDS", {}).get(tier.value)
        if not price_id:
            sentry_sdk.capture_message(f"Missing Stripe price ID for tier {tier.value}", level="warning")
            raise ValidationError("Tier not available", payload={"tier_id": tier_id})
        return tier, price_id

    @classmethod
    def get_or_create_customer(cls, user):
        if user.stripe_customer_id:
            return user.stripe_customer_id

        cls._configure()
        try:
            customer = stripe.Customer.create(
                email=user.email,
                name=user.name or None,
                metadata={"userId": str(user.id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed for user {user.id}: {e}")
            raise PaymentProviderError("Could not create payment customer")

        try:
            user.stripe_customer_id = customer["id"]
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info(f"Stripe customer {customer['id']} created for user {user.id}")
        return customer["id"]

    @classmethod
    def create_checkout_session(cls, user, tier_id, success_url, cancel_url):
        tier, price_id = cls.price_for_tier(tier_id)
        customer_id = cls.get_or_create_customer(user)

        cls._configure()
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={
                    "userId": str(user.id),
                    "tierId": tier.value,
                    "stripePriceId": price_id,
                },
            )
        except stripe.StripeError as e:
            logger.error(f"Checkout session creation failed for user {user.id}: {e}")
            sentry_sdk.capture_exception(e)
            raise PaymentProviderError("Could not start checkout")

        logger.info(f"Checkout session {session['id']} created for user {user.id} ({tier.value})")
        return session

    @classmethod
    def cancel_subscription(cls, stripe_subscription_id):
        cls._configure()
        try:
            return stripe.Subscription.cancel(stripe_subscription_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe cancellation failed for {stripe_subscription_id}: {e}")
            sentry_sdk.capture_exception(e)
            raise PaymentProviderError("Failed to cancel subscription")
