# portal/workers/tasks.py
import logging

from portal.workers.celery_app import celery

logger = logging.getLogger(__name__)


@celery.task(
    name="portal.workers.tasks.send_notification",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": 5},
)
def send_notification(kind, user_id, context=None):
    from portal.notifications.notification_service import NotificationService

    return NotificationService.deliver(kind, user_id, context or {})


@celery.task(name="portal.workers.tasks.purge_expired_tokens")
def purge_expired_tokens():
    from portal.security.authorizer import purge_expired_tokens as purge

    removed = purge()
    logger.info("Expired token purge finished", extra={"removed": removed})
    return removed


@celery.task(name="portal.workers.tasks.send_renewal_reminders")
def send_renewal_reminders():
    from portal.billing.subscriptions import send_renewal_reminders as run

    summary = run()
    logger.info("Renewal reminder run finished", extra=summary)
    return summary
