"""
API routes for bookings: intake, staff views and lifecycle actions.
"""
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Query
from sqlalchemy import func
from sqlmodel import col, select

from homecare.api.deps import (
    OptionalActor,
    PolicyDep,
    ProviderActor,
    SessionDep,
    StaffActor,
    StaffOrProviderActor,
)
from homecare.booking_models import (
    BookingCreate,
    BookingCreated,
    BookingDB,
    BookingPublic,
    BookingsPublic,
    BookingStatus,
    CompleteRequest,
    HistoryEntryPublic,
    HistoryPublic,
    ReasonRequest,
)
from homecare.services import intake, lifecycle
from homecare.services.history import list_history
from homecare.services.persistence import get_booking
from homecare.utils.geocoding import get_coordinates

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingCreated, status_code=201)
async def create_booking(
    booking_in: BookingCreate,
    session: SessionDep,
    policy: PolicyDep,
    actor: OptionalActor,
) -> Any:
    """
    Create a new booking from the public form or a CS operator.
    The address is geocoded when no coordinates were sent.
    """
    if booking_in.client_lat is None and booking_in.client_address_text:
        lat, lng = await get_coordinates(
            f"{booking_in.client_address_text}, {booking_in.city}"
        )
        if lat is not None and lng is not None:
            booking_in.client_lat, booking_in.client_lng = lat, lng

    booking = intake.create_booking(
        session, booking_in, policy, actor=actor or intake.WEB_ACTOR
    )
    return BookingCreated(booking_id=booking.id, booking_number=booking.booking_number)


@router.get("", response_model=BookingsPublic)
def list_bookings(
    session: SessionDep,
    actor: StaffActor,
    status: Optional[BookingStatus] = Query(None, description="Filter by status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
) -> Any:
    """
    Staff booking list, newest first.
    """
    statement = select(BookingDB)
    count_statement = select(func.count()).select_from(BookingDB)
    if status:
        statement = statement.where(BookingDB.status == status)
        count_statement = count_statement.where(BookingDB.status == status)

    count = session.exec(count_statement).one()
    bookings = session.exec(
        statement.order_by(col(BookingDB.created_at).desc()).offset(skip).limit(limit)
    ).all()
    return BookingsPublic(
        data=[BookingPublic.model_validate(b) for b in bookings], count=count
    )


@router.get("/{booking_id}", response_model=BookingPublic)
def read_booking(booking_id: uuid.UUID, session: SessionDep, actor: StaffActor) -> Any:
    return get_booking(session, booking_id)


@router.get("/{booking_id}/history", response_model=HistoryPublic)
def read_booking_history(booking_id: uuid.UUID, session: SessionDep, actor: StaffActor) -> Any:
    """
    Audit trail in the order actions were accepted.
    """
    get_booking(session, booking_id)
    entries = list_history(session, booking_id)
    return HistoryPublic(
        data=[HistoryEntryPublic.model_validate(e) for e in entries], count=len(entries)
    )


@router.post("/{booking_id}/cancel", response_model=BookingPublic)
def cancel_booking(
    booking_id: uuid.UUID, body: ReasonRequest, session: SessionDep, actor: StaffActor
) -> Any:
    return lifecycle.cancel_booking(session, booking_id, body.reason, actor)


@router.post("/{booking_id}/reject", response_model=BookingPublic)
def reject_booking(
    booking_id: uuid.UUID, body: ReasonRequest, session: SessionDep, actor: StaffActor
) -> Any:
    return lifecycle.reject_booking(session, booking_id, body.reason, actor)


@router.post("/{booking_id}/accept", response_model=BookingPublic)
def accept_assignment(booking_id: uuid.UUID, session: SessionDep, actor: ProviderActor) -> Any:
    """
    Provider accepts the job assigned to them.
    """
    return lifecycle.accept_assignment(session, booking_id, actor)


@router.post("/{booking_id}/decline", response_model=BookingPublic)
def decline_assignment(
    booking_id: uuid.UUID, body: ReasonRequest, session: SessionDep, actor: ProviderActor
) -> Any:
    """
    Provider hands the job back; the booking returns to NEW.
    """
    return lifecycle.decline_assignment(session, booking_id, actor, reason=body.reason)


@router.post("/{booking_id}/check-in", response_model=BookingPublic)
def check_in(booking_id: uuid.UUID, session: SessionDep, actor: ProviderActor) -> Any:
    return lifecycle.check_in(session, booking_id, actor)


@router.post("/{booking_id}/complete", response_model=BookingPublic)
def complete_booking(
    booking_id: uuid.UUID,
    body: CompleteRequest,
    session: SessionDep,
    policy: PolicyDep,
    actor: StaffOrProviderActor,
) -> Any:
    return lifecycle.complete_booking(
        session, booking_id, actor, policy, close_out_note=body.close_out_note
    )
