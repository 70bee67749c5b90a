"""
Staff notifications (record and poll).
"""
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from homecare.booking_models import BookingDB, BookingStatus, StaffNotificationDB
from homecare.core.logging import logger
from homecare.services.errors import BookingEngineError, PersistenceFailed
from homecare.utils.timeutils import utcnow

LATE_CHECKIN = "late_checkin"


class NotificationNotFound(BookingEngineError):
    code = "notification_not_found"
    status_code = 404


def find_late_checkins(session: Session, now: datetime, minutes: int) -> list[BookingDB]:
    cutoff = now - timedelta(minutes=minutes)
    statement = select(BookingDB).where(
        BookingDB.status == BookingStatus.ACCEPTED,
        col(BookingDB.check_in_at).is_(None),
        BookingDB.scheduled_at <= cutoff,
    ).order_by(BookingDB.scheduled_at)
    return list(session.exec(statement).all())


def record_late_checkins(
    session: Session, minutes: int, now: Optional[datetime] = None
) -> int:
    """
    One late_checkin notification per overdue booking. Bookings that already
    have one are skipped. Booking status is never touched.
    """
    now = now or utcnow()
    created = 0

    for booking in find_late_checkins(session, now, minutes):
        exists = session.exec(
            select(StaffNotificationDB).where(
                StaffNotificationDB.booking_id == booking.id,
                StaffNotificationDB.kind == LATE_CHECKIN,
            )
        ).first()
        if exists:
            continue

        late_by = int((now - booking.scheduled_at).total_seconds() // 60)
        session.add(
            StaffNotificationDB(
                target_role="admin",
                kind=LATE_CHECKIN,
                title=f"Late check-in: {booking.booking_number}",
                body=(
                    f"Provider {booking.assigned_provider_id} has not checked in, "
                    f"{late_by} minutes after the scheduled time in {booking.city}."
                ),
                booking_id=booking.id,
                provider_id=booking.assigned_provider_id,
            )
        )
        created += 1

    if created:
        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error({
                "event_type": "late_checkin_monitor",
                "event_name": "late_checkins_write_failed",
                "count": created,
                "error": str(e),
            })
            raise PersistenceFailed("Could not record late check-in notifications") from e
        logger.warning({
            "event_type": "late_checkin_monitor",
            "event_name": "late_checkins_recorded",
            "count": created,
        })
    return created


def list_notifications(
    session: Session,
    target_role: Optional[str] = None,
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 100,
) -> list[StaffNotificationDB]:
    statement = select(StaffNotificationDB)
    if target_role:
        statement = statement.where(StaffNotificationDB.target_role == target_role)
    if unread_only:
        statement = statement.where(StaffNotificationDB.read == False)  # noqa: E712
    statement = statement.order_by(col(StaffNotificationDB.created_at).desc()).offset(skip).limit(limit)
    return list(session.exec(statement).all())


def mark_read(session: Session, notification_id: uuid.UUID) -> StaffNotificationDB:
    notification = session.get(StaffNotificationDB, notification_id)
    if not notification:
        raise NotificationNotFound("Notification not found")
    notification.read = True
    session.add(notification)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error({
            "event_type": "staff_notifications",
            "event_name": "mark_read_failed",
            "notification_id": str(notification_id),
            "error": str(e),
        })
        raise PersistenceFailed("Could not update notification, please retry") from e
    session.refresh(notification)
    return notification
