"""
Booking audit log.

Writes are best-effort: they happen after the primary mutation has committed,
and a failure is logged without undoing that mutation.
"""
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from homecare.booking_models import BookingHistoryDB, HistoryAction
from homecare.core.logging import logger


def record_history(
    session: Session,
    booking_id: uuid.UUID,
    action: HistoryAction,
    performed_by: str,
    performer_role: str,
    note: Optional[str] = None,
) -> Optional[BookingHistoryDB]:
    entry = BookingHistoryDB(
        booking_id=booking_id,
        action=action,
        performed_by=str(performed_by),
        performer_role=str(performer_role),
        note=note,
    )
    try:
        session.add(entry)
        session.commit()
        session.refresh(entry)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error({
            "event_type": "booking_history",
            "event_name": "history_write_failed",
            "booking_id": str(booking_id),
            "action": action.value,
            "performed_by": str(performed_by),
            "error": str(e),
        })
        return None
    return entry


def list_history(session: Session, booking_id: uuid.UUID) -> list[BookingHistoryDB]:
    """Entries for one booking in the order the store accepted them."""
    statement = (
        select(BookingHistoryDB)
        .where(BookingHistoryDB.booking_id == booking_id)
        .order_by(BookingHistoryDB.id)
    )
    return list(session.exec(statement).all())
