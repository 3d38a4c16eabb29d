# portal/workers/celery_app.py
import os

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging
from flask import has_app_context
from kombu import Queue

from portal.logging_config import configure_logging_for_worker

celery = Celery(
    "portal",
    broker=os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0")),
    backend=os.getenv("CELERY_RESULT_BACKEND", os.getenv("REDIS_URL", "redis://localhost:6379/0")),
    include=["portal.workers.tasks"],
)

celery.conf.update(
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Reliability settings
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,

    # Routing
    task_default_queue="default",
    task_queues=(
        Queue("default"),
        Queue("notifications"),
    ),
    task_routes={
        "portal.workers.tasks.send_notification": {"queue": "notifications"},
    },

    # Time limits
    task_time_limit=300,
    task_soft_time_limit=240,
)

CELERY_BEAT_SCHEDULE = {
    "purge-expired-tokens-hourly": {
        "task": "portal.workers.tasks.purge_expired_tokens",
        "schedule": crontab(minute=15),
    },
    "send-renewal-reminders-daily": {
        "task": "portal.workers.tasks.send_renewal_reminders",
        "schedule": crontab(minute=0, hour=9),
    },
}


def init_celery(app):
    celery.conf.update(
        broker_url=app.config.get("CELERY_BROKER_URL"),
        result_backend=app.config.get("CELERY_RESULT_BACKEND"),
        task_always_eager=app.config.get("CELERY_TASK_ALWAYS_EAGER", False),
        beat_schedule=CELERY_BEAT_SCHEDULE,
    )

    class ContextTask(celery.Task):
        abstract = True

        def __call__(self, *args, **kwargs):
            if has_app_context():
                return super().__call__(*args, **kwargs)
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery.Task = ContextTask
    app.extensions["celery"] = celery
    return celery


@setup_logging.connect
def setup_worker_logging(loglevel=None, **kwargs):
    # Replaces Celery's own logging setup with the JSON formatter
    configure_logging_for_worker(loglevel or os.getenv("LOG_LEVEL", "INFO"))
