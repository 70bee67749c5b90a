"""
API routes for the booking outbox (sync monitor and manual dispatch).
"""
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query

from homecare.api.deps import AdminActor, SessionDep
from homecare.booking_models import (
    DispatchRequest,
    DispatchResult,
    OutboxEntryPublic,
    OutboxRowsPublic,
    OutboxStatus,
)
from homecare.core.config import settings
from homecare.services import outbox

router = APIRouter(prefix="/outbox", tags=["outbox"])


def _sink() -> outbox.HttpSink:
    if not settings.OUTBOX_SINK_URL:
        raise HTTPException(status_code=503, detail="Outbox sink is not configured")
    return outbox.get_default_sink()


@router.get("", response_model=OutboxRowsPublic)
def list_outbox_rows(
    session: SessionDep,
    actor: AdminActor,
    status: Optional[OutboxStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> Any:
    rows = outbox.list_rows(session, status=status, skip=skip, limit=limit)
    return OutboxRowsPublic(
        data=[OutboxEntryPublic.model_validate(r) for r in rows], count=len(rows)
    )


@router.post("/process", response_model=DispatchResult, response_model_exclude_none=True)
def process_outbox(
    session: SessionDep, actor: AdminActor, body: Optional[DispatchRequest] = None
) -> Any:
    """
    Run one dispatch pass now. With ids, only those rows are attempted and
    their retry schedule is ignored.
    """
    ids = body.ids if body else None
    return outbox.dispatch_pending(session, _sink(), ids=ids)


@router.post("/resend", response_model=DispatchResult, response_model_exclude_none=True)
def resend_outbox_rows(body: DispatchRequest, session: SessionDep, actor: AdminActor) -> Any:
    """
    Reset the given rows (attempts back to zero) and deliver them immediately.
    """
    if not body.ids:
        raise HTTPException(status_code=422, detail="ids are required")
    sink = _sink()
    outbox.reset_for_resend(session, body.ids)
    return outbox.dispatch_pending(session, sink, ids=body.ids)
