"""
API routes for the four-phase manual assignment workflow.
"""
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Query

from homecare.api.deps import PolicyDep, SessionDep, StaffActor
from homecare.booking_models import (
    AssignmentResult,
    AssignRequest,
    BookingPublic,
    CandidateLists,
    ClientAgreementRequest,
    ProviderShareRequest,
    WorkflowStatePublic,
)
from homecare.services import workflow
from homecare.services.persistence import get_booking

router = APIRouter(prefix="/bookings/{booking_id}/workflow", tags=["workflow"])


@router.get("", response_model=WorkflowStatePublic)
def read_workflow_state(booking_id: uuid.UUID, session: SessionDep, actor: StaffActor) -> Any:
    return workflow.workflow_state(get_booking(session, booking_id))


@router.post("/confirm-deal", response_model=BookingPublic)
def confirm_deal(booking_id: uuid.UUID, session: SessionDep, actor: StaffActor) -> Any:
    return workflow.confirm_deal(session, booking_id, actor)


@router.put("/client-agreement", response_model=BookingPublic)
def save_client_agreement(
    booking_id: uuid.UUID,
    body: ClientAgreementRequest,
    session: SessionDep,
    actor: StaffActor,
) -> Any:
    """
    Phase 1: confirm the deal and store the price agreed with the client.
    """
    return workflow.save_client_agreement(
        session, booking_id, body.agreed_price, actor, internal_note=body.internal_note
    )


@router.get("/candidates", response_model=CandidateLists)
def read_candidates(
    booking_id: uuid.UUID,
    session: SessionDep,
    actor: StaffActor,
    limit: Optional[int] = Query(None, ge=1, le=50),
) -> Any:
    """
    Phase 2: nearest, same-city and other-city providers.
    """
    return workflow.open_provider_list(session, booking_id, limit=limit)


@router.put("/provider-share", response_model=BookingPublic)
def save_provider_share(
    booking_id: uuid.UUID,
    body: ProviderShareRequest,
    session: SessionDep,
    actor: StaffActor,
) -> Any:
    """
    Phase 3: store the amount agreed with the selected provider.
    """
    return workflow.save_provider_share(
        session,
        booking_id,
        body.provider_share,
        actor,
        provider_id=body.provider_id,
        provider_agreed=body.provider_agreed,
    )


@router.post("/assign", response_model=AssignmentResult)
def assign_provider(
    booking_id: uuid.UUID,
    body: AssignRequest,
    session: SessionDep,
    policy: PolicyDep,
    actor: StaffActor,
) -> Any:
    """
    Phase 4: assign the booking and return the provider outreach details.
    """
    return workflow.assign_provider(session, booking_id, body.provider_id, actor, policy)
