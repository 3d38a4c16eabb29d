# portal/notifications/notification_service.py
import logging

from flask import current_app
from flask_mail import Message

from portal.extensions import db, mail
from portal.models.user import User
from portal.notifications.email_templates import EmailTemplates
from portal.tiers import tier_display_name, tier_monthly_amount

logger = logging.getLogger(__name__)


class NotificationService:
    """Build and send member emails"""

    @staticmethod
    def send_email(to_email, subject, html_content):
        """Send one email. Failures propagate so the calling task can retry."""
        msg = Message(
            subject=subject,
            recipients=[to_email],
            html=html_content,
            sender=current_app.config.get("MAIL_DEFAULT_SENDER"),
        )
        mail.send(msg)
        logger.info(f"Email sent to {to_email}: {subject}")

    @staticmethod
    def _dashboard_url():
        return f"{current_app.config.get('FRONTEND_URL', '')}/dashboard"

    @classmethod
    def notify_welcome(cls, user, context):
        subject, html = EmailTemplates.welcome(user.name, cls._dashboard_url())
        cls.send_email(user.email, subject, html)

    @classmethod
    def notify_payment_receipt(cls, user, context):
        tier = context.get("tier")
        subject, html = EmailTemplates.payment_receipt(
            tier_display_name(tier),
            context.get("amount", tier_monthly_amount(tier)),
            context.get("invoice_url"),
        )
        cls.send_email(user.email, subject, html)

    @classmethod
    def notify_payment_failed(cls, user, context):
        tier = context.get("tier")
        subject, html = EmailTemplates.payment_failed(
            tier_display_name(tier),
            context.get("amount", tier_monthly_amount(tier)),
            cls._dashboard_url(),
        )
        cls.send_email(user.email, subject, html)

    @classmethod
    def notify_subscription_canceled(cls, user, context):
        subject, html = EmailTemplates.subscription_canceled(
            tier_display_name(context.get("tier")),
            context.get("access_until"),
            cls._dashboard_url(),
        )
        cls.send_email(user.email, subject, html)

    @classmethod
    def notify_renewal_reminder(cls, user, context):
        tier = context.get("tier")
        subject, html = EmailTemplates.renewal_reminder(
            tier_display_name(tier),
            context.get("renewal_date"),
            tier_monthly_amount(tier),
            cls._dashboard_url(),
        )
        cls.send_email(user.email, subject, html)

    @classmethod
    def deliver(cls, kind, user_id, context=None):
        """Send the ``kind`` notification to a user. Returns False when the user is gone."""
        handlers = {
            "welcome": cls.notify_welcome,
            "payment_receipt": cls.notify_payment_receipt,
            "payment_failed": cls.notify_payment_failed,
            "subscription_canceled": cls.notify_subscription_canceled,
            "renewal_reminder": cls.notify_renewal_reminder,
        }
        handler = handlers.get(kind)
        if handler is None:
            raise ValueError(f"Unknown notification kind: {kind}")

        user = db.session.get(User, user_id)
        if user is None:
            logger.warning(f"Notification {kind} skipped: user {user_id} not found")
            return False

        handler(user, context or {})
        return True
