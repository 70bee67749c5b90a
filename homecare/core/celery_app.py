"""
Celery application configuration for background tasks.
"""

from celery import Celery

from homecare.core.config import settings

celery_app = Celery(
    "homecare_tasks",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=["homecare.tasks.outbox_tasks", "homecare.tasks.monitor_tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    result_expires=3600,  # 1 hour
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "process-booking-outbox": {
        "task": "homecare.tasks.outbox_tasks.process_outbox",
        "schedule": settings.OUTBOX_DISPATCH_INTERVAL_SECONDS,
    },
    "check-late-checkins": {
        "task": "homecare.tasks.monitor_tasks.check_late_checkins",
        "schedule": settings.LATE_CHECKIN_INTERVAL_SECONDS,
    },
}
