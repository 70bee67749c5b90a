"""
Booking intake from the public form or a CS operator.

The booking and its outbox row are committed together, so every stored booking
is eventually delivered to the spreadsheet.
"""
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from homecare.booking_models import (
    Actor,
    ActorRole,
    BookingCreate,
    BookingDB,
    BookingStatus,
    HistoryAction,
    OutboxEntryDB,
    ServiceDB,
)
from homecare.core.config import settings
from homecare.core.logging import logger
from homecare.services.errors import PersistenceFailed, ValidationFailed
from homecare.services.history import record_history
from homecare.services.policy import PlatformPolicy
from homecare.services.pricing import calculate_subtotal, clamp_hours
from homecare.utils.timeutils import isoformat_utc, to_naive_utc, utcnow

MAX_NAME_LENGTH = 200
MAX_PHONE_LENGTH = 20
# Operators sometimes log a visit a few minutes after it was agreed
SCHEDULE_GRACE = timedelta(minutes=5)

WEB_ACTOR = Actor(id="web", role=ActorRole.CUSTOMER)


def generate_booking_number(session: Session) -> str:
    """BK + yymmdd + daily sequence."""
    prefix = f"BK{utcnow():%y%m%d}"
    count = session.exec(
        select(func.count()).select_from(BookingDB).where(
            BookingDB.booking_number.startswith(prefix)
        )
    ).one()
    return f"{prefix}{count + 1:04d}"


def build_outbox_payload(booking: BookingDB) -> dict[str, Any]:
    return {
        "booking_id": str(booking.id),
        "booking_number": booking.booking_number,
        "service_id": str(booking.service_id),
        "city": booking.city,
        "scheduled_at": isoformat_utc(booking.scheduled_at),
        "notes": booking.notes,
        "status": booking.status.value,
        "client_lat": booking.client_lat,
        "client_lng": booking.client_lng,
        "created_at": isoformat_utc(booking.created_at),
        "source": booking.source,
        "customer_name": booking.customer_name,
        "customer_phone": booking.customer_phone,
        "client_address_text": booking.client_address_text,
        "hours": booking.hours,
        "time_slot": booking.time_slot.value if booking.time_slot else None,
    }


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _validate(session: Session, data: BookingCreate) -> ServiceDB:
    name = data.customer_name.strip()
    phone = data.customer_phone.strip()
    if not name or len(name) > MAX_NAME_LENGTH:
        raise ValidationFailed("Customer name is required (max 200 characters)", code="invalid_name")
    if not phone or len(phone) > MAX_PHONE_LENGTH:
        raise ValidationFailed("Customer phone is required (max 20 characters)", code="invalid_phone")
    if not data.city.strip():
        raise ValidationFailed("City is required", code="invalid_city")
    if (data.client_lat is None) != (data.client_lng is None):
        raise ValidationFailed("Both latitude and longitude are required", code="invalid_location")
    if to_naive_utc(data.scheduled_at) < utcnow() - SCHEDULE_GRACE:
        raise ValidationFailed("Scheduled time is in the past", code="invalid_schedule")

    service = session.get(ServiceDB, data.service_id)
    if not service or not service.active:
        raise ValidationFailed("Service is not available", code="invalid_service")
    return service


def create_booking(
    session: Session,
    data: BookingCreate,
    policy: PlatformPolicy,
    actor: Actor = WEB_ACTOR,
) -> BookingDB:
    """Store a NEW booking together with its outbox row."""
    service = _validate(session, data)
    hours = clamp_hours(data.hours)

    booking = BookingDB(
        booking_number=generate_booking_number(session),
        service_id=service.id,
        city=data.city.strip(),
        scheduled_at=to_naive_utc(data.scheduled_at),
        status=BookingStatus.NEW,
        customer_user_id=actor.id if actor.role == ActorRole.CUSTOMER and actor.id != WEB_ACTOR.id else None,
        customer_name=data.customer_name.strip(),
        customer_phone=data.customer_phone.strip(),
        client_address_text=_clean(data.client_address_text),
        client_lat=data.client_lat,
        client_lng=data.client_lng,
        notes=_clean(data.notes),
        hours=hours,
        time_slot=data.time_slot,
        source=data.source or "web",
        subtotal=calculate_subtotal(hours, data.time_slot, policy),
    )
    outbox = OutboxEntryDB(
        booking_id=booking.id,
        destination=settings.OUTBOX_DESTINATION,
        payload=build_outbox_payload(booking),
    )

    session.add(booking)
    session.add(outbox)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error({
            "event_type": "booking_intake",
            "event_name": "booking_create_failed",
            "error": str(e),
        })
        raise PersistenceFailed("Could not create booking, please retry") from e
    session.refresh(booking)

    record_history(
        session, booking.id, HistoryAction.CREATED, actor.id, actor.role.value,
        f"source={booking.source}",
    )
    logger.info({
        "event_type": "booking_intake",
        "event_name": "booking_created",
        "booking_id": str(booking.id),
        "booking_number": booking.booking_number,
        "service_id": str(booking.service_id),
        "city": booking.city,
        "subtotal": booking.subtotal,
        "source": booking.source,
    })
    return booking
