"""
Four-phase manual assignment workflow.

1. Client agreement: mark the deal confirmed and save the agreed price.
2. Open the provider list (matching only, nothing is stored).
3. Provider negotiation: save the provider's share.
4. Final assignment: the only phase that changes the booking status.

Each phase is saved on its own. A phase either commits all of its fields or
none of them; the history entry is written afterwards on a best-effort basis.
"""
import uuid
from typing import Optional

from sqlmodel import Session, select

from homecare.booking_models import (
    Actor,
    AssignmentResult,
    BookingDB,
    BookingPublic,
    BookingStatus,
    CandidateLists,
    HistoryAction,
    ProviderOutreach,
    ProviderProfileDB,
    ProviderStatus,
    ServiceDB,
    WorkflowStatePublic,
)
from homecare.core.logging import logger
from homecare.services import ledger
from homecare.services.errors import (
    InvalidTransition,
    PhaseNotReady,
    ProviderNotEligible,
    ValidationFailed,
)
from homecare.services.history import record_history
from homecare.services.matcher import find_candidates_for_booking
from homecare.services.persistence import commit_booking, get_booking
from homecare.services.policy import PlatformPolicy
from homecare.services.pricing import round_money
from homecare.services.status_machine import ensure_transition, is_terminal
from homecare.utils.timeutils import utcnow

OUTREACH_TEMPLATE = (
    "Hello {name}, you have a new {service} booking in {city} "
    "on {scheduled}. Your share: {share} JOD. Booking #{number}."
)


def _ensure_open(booking: BookingDB) -> None:
    if is_terminal(booking.status):
        raise InvalidTransition(
            f"Booking is {booking.status.value} and can no longer be edited",
            code="booking_closed",
        )


def _fmt(amount: Optional[float]) -> str:
    if amount is None:
        return "-"
    return f"{amount:g}"


def client_agreement_done(booking: BookingDB) -> bool:
    return booking.deal_confirmed_at is not None and booking.agreed_price is not None


def _mark_deal_confirmed(booking: BookingDB, actor: Actor) -> bool:
    """Returns True only on the first marking."""
    if booking.deal_confirmed_at is not None:
        return False
    booking.deal_confirmed_at = utcnow()
    booking.deal_confirmed_by = actor.id
    return True


def confirm_deal(session: Session, booking_id: uuid.UUID, actor: Actor) -> BookingDB:
    """Mark the client deal as confirmed. Re-marking is a no-op."""
    booking = get_booking(session, booking_id)
    _ensure_open(booking)

    if not _mark_deal_confirmed(booking, actor):
        return booking

    commit_booking(session, booking, "deal_confirmed")
    record_history(
        session, booking.id, HistoryAction.DEAL_CONFIRMED, actor.id, actor.role.value
    )
    logger.info({
        "event_type": "assignment_workflow",
        "event_name": "deal_confirmed",
        "booking_id": str(booking.id),
        "performed_by": actor.id,
    })
    return booking


def save_client_agreement(
    session: Session,
    booking_id: uuid.UUID,
    agreed_price: float,
    actor: Actor,
    internal_note: Optional[str] = None,
) -> BookingDB:
    """Phase 1. Confirms the deal if needed and stores price and note together."""
    price = round_money(agreed_price)
    if price is None or price <= 0:
        raise ValidationFailed("Agreed price must be greater than zero", code="invalid_price")

    booking = get_booking(session, booking_id)
    _ensure_open(booking)

    previous = booking.agreed_price
    _mark_deal_confirmed(booking, actor)
    booking.agreed_price = price
    if internal_note is not None:
        booking.internal_note = internal_note.strip() or None

    commit_booking(session, booking, "client_agreement")

    note = f"agreed_price={_fmt(booking.agreed_price)}"
    if previous is not None and previous != booking.agreed_price:
        note += f" (was {_fmt(previous)})"
    record_history(session, booking.id, HistoryAction.PRICED, actor.id, actor.role.value, note)

    logger.info({
        "event_type": "assignment_workflow",
        "event_name": "client_agreement_saved",
        "booking_id": str(booking.id),
        "agreed_price": booking.agreed_price,
        "previous_price": previous,
        "performed_by": actor.id,
    })
    return booking


def open_provider_list(
    session: Session, booking_id: uuid.UUID, limit: Optional[int] = None
) -> CandidateLists:
    """Phase 2. Read-only, safe to call any number of times."""
    booking = get_booking(session, booking_id)
    _ensure_open(booking)
    if not client_agreement_done(booking):
        raise PhaseNotReady(
            "Confirm the deal and agree a price with the client first",
            code="client_agreement_required",
        )
    return find_candidates_for_booking(session, booking, limit=limit)


def save_provider_share(
    session: Session,
    booking_id: uuid.UUID,
    provider_share: float,
    actor: Actor,
    provider_id: Optional[str] = None,
    provider_agreed: bool = False,
) -> BookingDB:
    """
    Phase 3. The selected provider and the "provider agreed" flag are advisory
    and only end up in the history note.
    """
    booking = get_booking(session, booking_id)
    _ensure_open(booking)
    if not client_agreement_done(booking):
        raise PhaseNotReady("Agree a price with the client first", code="client_agreement_required")
    share = round_money(provider_share)
    if share is None or share < 0 or share > booking.agreed_price:
        raise ValidationFailed(
            f"Provider share must be between 0 and {_fmt(booking.agreed_price)}",
            code="invalid_provider_share",
        )

    previous = booking.provider_share
    booking.provider_share = share
    commit_booking(session, booking, "provider_share")

    note = f"provider_share={_fmt(booking.provider_share)}"
    if previous is not None and previous != booking.provider_share:
        note += f" (was {_fmt(previous)})"
    if provider_id:
        note += f"; provider={provider_id}"
    if provider_agreed:
        note += "; provider agreed"
    record_history(
        session, booking.id, HistoryAction.PROVIDER_SHARE_SET, actor.id, actor.role.value, note
    )

    logger.info({
        "event_type": "assignment_workflow",
        "event_name": "provider_share_saved",
        "booking_id": str(booking.id),
        "provider_share": booking.provider_share,
        "provider_id": provider_id,
        "performed_by": actor.id,
    })
    return booking


def _check_provider(
    session: Session, provider_id: str, policy: PlatformPolicy
) -> ProviderProfileDB:
    provider = session.exec(
        select(ProviderProfileDB).where(ProviderProfileDB.user_id == provider_id)
    ).first()
    if not provider or provider.provider_status != ProviderStatus.APPROVED:
        raise ProviderNotEligible(
            f"Provider {provider_id} is not an approved provider",
            code="provider_not_approved",
        )

    if policy.debt_limit is not None:
        # Point-in-time read; concurrent assignments may race past it
        balance = ledger.get_balance(session, provider_id)
        if balance < policy.debt_limit:
            logger.warning({
                "event_type": "assignment_workflow",
                "event_name": "debt_limit_blocked",
                "provider_id": provider_id,
                "balance": balance,
                "debt_limit": policy.debt_limit,
            })
            raise ProviderNotEligible(
                f"Provider balance {_fmt(balance)} is below the debt limit {_fmt(policy.debt_limit)}",
                code="debt_limit_exceeded",
            )
    return provider


def build_outreach(
    booking: BookingDB, provider: ProviderProfileDB, service: Optional[ServiceDB]
) -> ProviderOutreach:
    service_name = None
    if service:
        service_name = service.name_en or service.name
    message = OUTREACH_TEMPLATE.format(
        name=provider.full_name or provider.user_id,
        service=service_name or "home care",
        city=booking.city,
        scheduled=booking.scheduled_at.strftime("%Y-%m-%d %H:%M"),
        share=_fmt(booking.provider_share),
        number=booking.booking_number,
    )
    return ProviderOutreach(
        provider_id=provider.user_id,
        provider_name=provider.full_name,
        provider_phone=provider.phone,
        service_name=service_name,
        city=booking.city,
        provider_share=booking.provider_share,
        message=message,
    )


def assign_provider(
    session: Session,
    booking_id: uuid.UUID,
    provider_id: Optional[str],
    actor: Actor,
    policy: PlatformPolicy,
) -> AssignmentResult:
    """
    Phase 4. Moves the booking to ASSIGNED and returns what the dashboard needs
    to contact the provider.
    """
    booking = get_booking(session, booking_id)
    _ensure_open(booking)

    if not client_agreement_done(booking):
        raise PhaseNotReady("Client agreement is not complete", code="client_agreement_required")
    if booking.provider_share is None:
        raise PhaseNotReady("Provider share has not been set", code="provider_share_required")
    if booking.provider_share > booking.agreed_price:
        raise ValidationFailed(
            "Provider share exceeds the agreed price, update it before assigning",
            code="invalid_provider_share",
        )
    if not provider_id:
        raise PhaseNotReady("Select a provider first", code="provider_required")
    ensure_transition(booking.status, BookingStatus.ASSIGNED)

    provider = _check_provider(session, provider_id, policy)

    previous_provider = booking.assigned_provider_id
    booking.status = BookingStatus.ASSIGNED
    booking.assigned_provider_id = provider.user_id
    booking.assigned_at = utcnow()
    booking.assigned_by = actor.id
    booking.accepted_at = None
    commit_booking(session, booking, "assignment")

    note = (
        f"provider={provider.user_id}; agreed_price={_fmt(booking.agreed_price)}; "
        f"provider_share={_fmt(booking.provider_share)}"
    )
    if previous_provider and previous_provider != provider.user_id:
        note += f"; replaced {previous_provider}"
    record_history(session, booking.id, HistoryAction.ASSIGNED, actor.id, actor.role.value, note)

    logger.info({
        "event_type": "assignment_workflow",
        "event_name": "provider_assigned",
        "booking_id": str(booking.id),
        "provider_id": provider.user_id,
        "agreed_price": booking.agreed_price,
        "provider_share": booking.provider_share,
        "performed_by": actor.id,
    })

    service = session.get(ServiceDB, booking.service_id)
    return AssignmentResult(
        booking=BookingPublic.model_validate(booking),
        outreach=build_outreach(booking, provider, service),
    )


def workflow_state(booking: BookingDB) -> WorkflowStatePublic:
    profit = None
    if booking.agreed_price is not None and booking.provider_share is not None:
        profit = round(booking.agreed_price - booking.provider_share, 2)

    return WorkflowStatePublic(
        booking_id=booking.id,
        status=booking.status,
        deal_confirmed=booking.deal_confirmed_at is not None,
        priced=booking.agreed_price is not None,
        client_agreement_done=client_agreement_done(booking),
        provider_share_set=booking.provider_share is not None,
        assigned=booking.assigned_provider_id is not None
        and booking.status != BookingStatus.NEW,
        agreed_price=booking.agreed_price,
        provider_share=booking.provider_share,
        profit=profit,
        profit_negative=profit is not None and profit < 0,
    )
