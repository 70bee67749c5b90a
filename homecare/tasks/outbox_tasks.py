"""
Outbox delivery task, run by Celery beat.
"""
import uuid
from typing import Any, Optional

from celery import shared_task
from sqlmodel import Session

from homecare.core.config import settings
from homecare.core.db import engine
from homecare.core.logging import logger
from homecare.services.outbox import dispatch_pending, get_default_sink


@shared_task
def process_outbox(ids: Optional[list[str]] = None) -> dict[str, Any]:
    """
    Deliver one batch of due outbox rows, or the given rows when ids are passed.
    """
    if not settings.OUTBOX_SINK_URL:
        logger.warning({
            "event_type": "task_execution",
            "event_name": "process_outbox_skipped",
            "reason": "sink_not_configured",
        })
        return {"processed": 0, "message": "Outbox sink not configured"}

    row_ids = [uuid.UUID(i) for i in ids] if ids else None
    with Session(engine) as session:
        result = dispatch_pending(session, get_default_sink(), ids=row_ids)

    return result.model_dump(exclude_none=True)
