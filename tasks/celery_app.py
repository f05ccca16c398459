"""
tasks/celery_app.py
Celery application instance shared by all task modules.

Workers are started with:
    celery -A tasks.celery_app worker --loglevel=info --concurrency=2 -Q email
"""

from celery import Celery

from config.settings import settings

celery_app = Celery(
    "saint_directory",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "tasks.email_tasks",
    ],
)

# ── Configuration ─────────────────────────────────────────────

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.TIMEZONE,
    enable_utc=True,

    # Acknowledge after execution so a dying worker does not lose mail
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    result_expires=3600,
    task_max_retries=3,

    task_annotations={
        "tasks.email_tasks.send_email": {"rate_limit": "20/s"},
    },
    task_routes={
        "tasks.email_tasks.*": {"queue": "email"},
    },
    worker_prefetch_multiplier=1,
)
