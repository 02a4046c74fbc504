"""
Celery application: broker and result backend from settings.
Tasks are in app.workers.tasks (payment reconciliation).
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from app.core.config import settings

celery_app = Celery(
    "app",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.workers.tasks.reconcile_payments",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=600,
    result_expires=86400,
    beat_schedule={
        "reconcile-pending-payments": {
            "task": "app.workers.tasks.reconcile_payments.reconcile_pending_payments",
            "schedule": crontab(minute="*/10"),
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    from app.core.logging import configure_logging

    configure_logging()
