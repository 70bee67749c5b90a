"""
API routes for provider wallets.
"""
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from homecare.api.deps import AdminActor, CurrentActor, SessionDep
from homecare.booking_models import (
    Actor,
    ActorRole,
    BalancePublic,
    BalancesPublic,
    LedgerEntriesPublic,
    LedgerEntryPublic,
    SettlementRequest,
)
from homecare.services import ledger

router = APIRouter(prefix="/wallet", tags=["wallet"])


def _check_wallet_access(actor: Actor, provider_id: str) -> None:
    """Staff see every wallet, providers only their own."""
    if actor.is_staff:
        return
    if actor.role != ActorRole.PROVIDER or actor.id != provider_id:
        raise HTTPException(status_code=403, detail="Not enough permissions")


@router.get("/balances", response_model=BalancesPublic)
def read_balances(session: SessionDep, actor: AdminActor) -> Any:
    """
    Every provider's balance, largest debt first.
    """
    return ledger.list_balances(session)


@router.get("/{provider_id}", response_model=BalancePublic)
def read_balance(provider_id: str, session: SessionDep, actor: CurrentActor) -> Any:
    _check_wallet_access(actor, provider_id)
    return BalancePublic(provider_id=provider_id, balance=ledger.get_balance(session, provider_id))


@router.get("/{provider_id}/entries", response_model=LedgerEntriesPublic)
def read_entries(
    provider_id: str,
    session: SessionDep,
    actor: CurrentActor,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> Any:
    _check_wallet_access(actor, provider_id)
    entries = ledger.list_entries(session, provider_id, skip=skip, limit=limit)
    return LedgerEntriesPublic(
        data=[LedgerEntryPublic.model_validate(e) for e in entries], count=len(entries)
    )


@router.post("/{provider_id}/settlements", response_model=LedgerEntryPublic, status_code=201)
def record_settlement(
    provider_id: str, body: SettlementRequest, session: SessionDep, actor: AdminActor
) -> Any:
    """
    Record a payment received from a provider.
    """
    return ledger.record_settlement(session, provider_id, body.amount)
