"""
API routes for staff notifications.
"""
import uuid
from typing import Any

from fastapi import APIRouter, Query

from homecare.api.deps import SessionDep, StaffActor
from homecare.booking_models import NotificationPublic, NotificationsPublic
from homecare.services import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationsPublic)
def list_notifications(
    session: SessionDep,
    actor: StaffActor,
    unread_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
) -> Any:
    rows = notifications.list_notifications(
        session, unread_only=unread_only, skip=skip, limit=limit
    )
    return NotificationsPublic(
        data=[NotificationPublic.model_validate(r) for r in rows], count=len(rows)
    )


@router.post("/{notification_id}/read", response_model=NotificationPublic)
def mark_notification_read(
    notification_id: uuid.UUID, session: SessionDep, actor: StaffActor
) -> Any:
    return notifications.mark_read(session, notification_id)
