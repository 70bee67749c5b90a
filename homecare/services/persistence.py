import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from homecare.booking_models import BookingDB
from homecare.core.logging import logger
from homecare.services.errors import BookingNotFound, PersistenceFailed
from homecare.utils.timeutils import utcnow


def get_booking(session: Session, booking_id: uuid.UUID | str) -> BookingDB:
    try:
        key = booking_id if isinstance(booking_id, uuid.UUID) else uuid.UUID(str(booking_id))
    except ValueError:
        raise BookingNotFound(f"Booking {booking_id} not found")

    booking = session.get(BookingDB, key)
    if not booking:
        raise BookingNotFound(f"Booking {booking_id} not found")
    return booking


def commit_booking(session: Session, booking: BookingDB, event_name: str, *extra) -> BookingDB:
    """
    Commit the booking and any extra rows in one transaction. On failure every
    pending change is rolled back and PersistenceFailed is raised.
    """
    booking.updated_at = utcnow()
    session.add(booking)
    for obj in extra:
        session.add(obj)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error({
            "event_type": "booking_persistence",
            "event_name": f"{event_name}_failed",
            "booking_id": str(booking.id),
            "error": str(e),
        })
        raise PersistenceFailed("Could not save booking, please retry") from e

    session.refresh(booking)
    return booking
