"""
Advisory monitors run by Celery beat.
"""
from typing import Any

from celery import shared_task
from sqlmodel import Session

from homecare.core.config import settings
from homecare.core.db import engine
from homecare.core.logging import logger
from homecare.services.notifications import record_late_checkins


@shared_task
def check_late_checkins() -> dict[str, Any]:
    """
    Flag accepted bookings whose provider has not checked in on time.
    """
    logger.info({
        "event_type": "task_execution",
        "event_name": "check_late_checkins_start",
        "threshold_minutes": settings.LATE_CHECKIN_MINUTES,
    })
    with Session(engine) as session:
        created = record_late_checkins(session, settings.LATE_CHECKIN_MINUTES)

    return {"success": True, "notified_count": created}
