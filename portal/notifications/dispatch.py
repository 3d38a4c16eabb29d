"""
Hand notifications to the task queue once the state they describe is committed.

Queueing failures are logged and reported; they never fail the caller.
"""

import logging
from collections import namedtuple

import sentry_sdk

logger = logging.getLogger(__name__)

Notification = namedtuple("Notification", ["kind", "user_id", "context"])


def dispatch_notification(notification):
    from portal.workers.tasks import send_notification

    try:
        send_notification.delay(notification.kind, notification.user_id, notification.context)
        return True
    except Exception as e:
        logger.error(
            f"Failed to queue {notification.kind} notification: {e}",
            extra={"user_id": notification.user_id, "kind": notification.kind},
        )
        sentry_sdk.capture_exception(e)
        return False


def dispatch_notifications(notifications):
    """Queue each notification independently. Returns how many were queued."""
    return sum(1 for notification in notifications if dispatch_notification(notification))
