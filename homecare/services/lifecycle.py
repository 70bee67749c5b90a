"""
Booking lifecycle actions outside the assignment phases: cancel, reject,
provider accept/decline, check-in and completion.
"""
import uuid
from typing import Optional

from sqlmodel import Session

from homecare.booking_models import (
    Actor,
    ActorRole,
    BookingDB,
    BookingStatus,
    HistoryAction,
    LedgerReason,
    WalletLedgerEntryDB,
)
from homecare.core.logging import logger
from homecare.services import ledger
from homecare.services.errors import ProviderNotEligible, ValidationFailed
from homecare.services.history import record_history
from homecare.services.persistence import commit_booking, get_booking
from homecare.services.policy import PlatformPolicy
from homecare.services.status_machine import ensure_transition
from homecare.utils.timeutils import utcnow


def _require_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A reason is required", code="reason_required")
    return reason


def _require_assigned_provider(booking: BookingDB, actor: Actor) -> None:
    if actor.role != ActorRole.PROVIDER or booking.assigned_provider_id != actor.id:
        raise ProviderNotEligible(
            "Only the assigned provider can perform this action",
            code="not_assigned_provider",
        )


def _log(event_name: str, booking: BookingDB, actor: Actor, **extra) -> None:
    logger.info({
        "event_type": "booking_lifecycle",
        "event_name": event_name,
        "booking_id": str(booking.id),
        "status": booking.status.value,
        "performed_by": actor.id,
        **extra,
    })


def cancel_booking(
    session: Session, booking_id: uuid.UUID, reason: str, actor: Actor
) -> BookingDB:
    reason = _require_reason(reason)
    booking = get_booking(session, booking_id)
    ensure_transition(booking.status, BookingStatus.CANCELLED)

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = utcnow()
    booking.cancel_reason = reason
    commit_booking(session, booking, "cancel")

    record_history(session, booking.id, HistoryAction.CANCELLED, actor.id, actor.role.value, reason)
    _log("booking_cancelled", booking, actor)
    return booking


def reject_booking(
    session: Session, booking_id: uuid.UUID, reason: str, actor: Actor
) -> BookingDB:
    reason = _require_reason(reason)
    booking = get_booking(session, booking_id)
    ensure_transition(booking.status, BookingStatus.REJECTED)

    booking.status = BookingStatus.REJECTED
    booking.rejected_at = utcnow()
    booking.rejected_by = actor.id
    booking.reject_reason = reason
    commit_booking(session, booking, "reject")

    record_history(session, booking.id, HistoryAction.REJECTED, actor.id, actor.role.value, reason)
    _log("booking_rejected", booking, actor)
    return booking


def accept_assignment(session: Session, booking_id: uuid.UUID, actor: Actor) -> BookingDB:
    """ASSIGNED -> ACCEPTED, only by the provider the booking is assigned to."""
    booking = get_booking(session, booking_id)
    _require_assigned_provider(booking, actor)
    ensure_transition(booking.status, BookingStatus.ACCEPTED)

    booking.status = BookingStatus.ACCEPTED
    booking.accepted_at = utcnow()
    commit_booking(session, booking, "accept")

    record_history(session, booking.id, HistoryAction.ACCEPTED, actor.id, actor.role.value)
    _log("assignment_accepted", booking, actor)
    return booking


def decline_assignment(
    session: Session, booking_id: uuid.UUID, actor: Actor, reason: Optional[str] = None
) -> BookingDB:
    """The assigned provider hands the job back: ASSIGNED -> NEW."""
    booking = get_booking(session, booking_id)
    _require_assigned_provider(booking, actor)
    ensure_transition(booking.status, BookingStatus.NEW)
    booking.status = BookingStatus.NEW
    booking.assigned_provider_id = None
    booking.assigned_at = None
    booking.assigned_by = None
    commit_booking(session, booking, "decline")

    record_history(
        session,
        booking.id,
        HistoryAction.PROVIDER_DECLINED,
        actor.id,
        actor.role.value,
        (reason or "").strip() or None,
    )
    _log("assignment_declined", booking, actor)
    return booking


def check_in(session: Session, booking_id: uuid.UUID, actor: Actor) -> BookingDB:
    """The provider arrived: ACCEPTED -> IN_PROGRESS."""
    booking = get_booking(session, booking_id)
    _require_assigned_provider(booking, actor)
    ensure_transition(booking.status, BookingStatus.IN_PROGRESS)

    booking.status = BookingStatus.IN_PROGRESS
    booking.check_in_at = utcnow()
    commit_booking(session, booking, "check_in")

    record_history(session, booking.id, HistoryAction.CHECKED_IN, actor.id, actor.role.value)
    _log("provider_checked_in", booking, actor)
    return booking


def platform_fee_entry(booking: BookingDB, policy: PlatformPolicy) -> Optional[WalletLedgerEntryDB]:
    """
    The ledger entry a completion produces for the assigned provider.

    With a negotiated price the platform keeps agreed_price - provider_share:
    a positive margin is a debit, a negative one is credited back as an
    adjustment. Without one the policy fee on the subtotal is debited.
    """
    if not booking.assigned_provider_id:
        return None

    if booking.agreed_price is not None and booking.provider_share is not None:
        margin = round(booking.agreed_price - booking.provider_share, 2)
    else:
        margin = policy.platform_fee(booking.subtotal or 0)

    if margin > 0:
        return ledger.build_entry(
            booking.assigned_provider_id, -margin, LedgerReason.PLATFORM_FEE, booking.id
        )
    if margin < 0:
        return ledger.build_entry(
            booking.assigned_provider_id, -margin, LedgerReason.ADJUSTMENT, booking.id
        )
    return None


def complete_booking(
    session: Session,
    booking_id: uuid.UUID,
    actor: Actor,
    policy: PlatformPolicy,
    close_out_note: Optional[str] = None,
) -> BookingDB:
    """Close the booking and append the platform-fee entry in the same commit."""
    booking = get_booking(session, booking_id)
    if not actor.is_staff:
        _require_assigned_provider(booking, actor)
    ensure_transition(booking.status, BookingStatus.COMPLETED)

    entry = platform_fee_entry(booking, policy)

    booking.status = BookingStatus.COMPLETED
    booking.completed_at = utcnow()
    booking.completed_by = actor.id
    if close_out_note is not None:
        booking.close_out_note = close_out_note.strip() or None

    extra = (entry,) if entry else ()
    commit_booking(session, booking, "complete", *extra)

    note = close_out_note
    if entry:
        note = f"{entry.reason.value}={entry.amount:g}" + (f"; {close_out_note}" if close_out_note else "")
    record_history(session, booking.id, HistoryAction.COMPLETED, actor.id, actor.role.value, note)
    _log(
        "booking_completed",
        booking,
        actor,
        provider_id=booking.assigned_provider_id,
        ledger_amount=entry.amount if entry else None,
    )
    return booking
