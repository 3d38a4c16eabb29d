from unittest.mock import patch

import pytest

from portal.extensions import mail
from portal.notifications import Notification, dispatch_notification, dispatch_notifications
from portal.notifications.email_templates import EmailTemplates
from portal.notifications.notification_service import NotificationService


class TestTemplates:
    def test_receipt_formats_amount_and_invoice_link(self):
        subject, html = EmailTemplates.payment_receipt("Pro", 9.99, "https://invoice.example/1")

        assert subject == "Payment Receipt - Pro"
        assert "$9.99" in html
        assert "https://invoice.example/1" in html

    def test_receipt_without_invoice_url(self):
        _, html = EmailTemplates.payment_receipt("Pro", 9.99)
        assert "View Invoice" not in html

    def test_cancellation_formats_access_date(self):
        _, html = EmailTemplates.subscription_canceled("Premium", "2030-03-01T00:00:00", "https://app/dashboard")
        assert "March 01, 2030" in html

    def test_cancellation_without_date(self):
        _, html = EmailTemplates.subscription_canceled("Premium", None, "https://app/dashboard")
        assert "N/A" in html


class TestNotificationService:
    @pytest.mark.parametrize("kind,context,subject", [
        ("welcome", {}, "Welcome to the Platform!"),
        ("payment_receipt", {"tier": "tier2", "amount": 9.99}, "Payment Receipt - Pro"),
        ("payment_failed", {"tier": "tier3", "amount": 19.99}, "Payment Failed - Action Required"),
        ("subscription_canceled", {"tier": "tier4", "access_until": None}, "Subscription Canceled - Enterprise"),
        ("renewal_reminder", {"tier": "tier2", "renewal_date": "2030-01-01T00:00:00"},
         "Subscription Renewal Reminder - Pro"),
    ])
    def test_deliver_sends_each_kind(self, make_user, kind, context, subject):
        user = make_user()

        with mail.record_messages() as outbox:
            assert NotificationService.deliver(kind, user.id, context)

        assert len(outbox) == 1
        assert outbox[0].subject == subject
        assert outbox[0].recipients == [user.email]

    def test_missing_user_is_skipped(self, app):
        with mail.record_messages() as outbox:
            assert NotificationService.deliver("welcome", 424242, {}) is False
        assert outbox == []

    def test_unknown_kind(self, make_user):
        with pytest.raises(ValueError):
            NotificationService.deliver("birthday", make_user().id, {})


class TestDispatch:
    def test_queues_on_the_task(self, app):
        with patch("portal.workers.tasks.send_notification.delay") as delay:
            assert dispatch_notification(Notification("welcome", 7, {}))
        delay.assert_called_once_with("welcome", 7, {})

    def test_queue_failure_is_reported_not_raised(self, app):
        with patch("portal.workers.tasks.send_notification.delay", side_effect=ConnectionError("broker down")), \
                patch("portal.notifications.dispatch.sentry_sdk.capture_exception") as capture:
            assert dispatch_notification(Notification("welcome", 7, {})) is False
        capture.assert_called_once()

    def test_each_notification_is_independent(self, app):
        notifications = [Notification("welcome", 1, {}), Notification("welcome", 2, {})]

        with patch(
            "portal.workers.tasks.send_notification.delay",
            side_effect=[ConnectionError("broker down"), None],
        ), patch("portal.notifications.dispatch.sentry_sdk.capture_exception"):
            assert dispatch_notifications(notifications) == 1
