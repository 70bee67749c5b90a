"""
Provider wallet ledger.

Append-only signed entries; a provider's balance is always recomputed from the
log. Negative amounts are owed to the platform, positive amounts are credits.
"""
import uuid
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from homecare.booking_models import (
    BalancePublic,
    BalancesPublic,
    LedgerReason,
    WalletLedgerEntryDB,
)
from homecare.core.logging import logger
from homecare.services.errors import PersistenceFailed, ValidationFailed
from homecare.services.pricing import round_money


def build_entry(
    provider_id: str,
    amount: float,
    reason: LedgerReason,
    booking_id: Optional[uuid.UUID] = None,
) -> WalletLedgerEntryDB:
    """Validate and build an entry without committing it."""
    if not provider_id:
        raise ValidationFailed("provider_id is required", code="provider_required")
    rounded = round_money(amount)
    if not rounded:
        raise ValidationFailed("Ledger amount must be a non-zero number", code="zero_amount")

    return WalletLedgerEntryDB(
        provider_id=str(provider_id),
        amount=rounded,
        reason=reason,
        booking_id=booking_id,
    )


def record_entry(
    session: Session,
    provider_id: str,
    amount: float,
    reason: LedgerReason,
    booking_id: Optional[uuid.UUID] = None,
) -> WalletLedgerEntryDB:
    """
    Append one entry. The sign is taken as given; it is never inferred from
    the reason.
    """
    entry = build_entry(provider_id, amount, reason, booking_id)
    session.add(entry)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error({
            "event_type": "wallet_ledger",
            "event_name": "entry_write_failed",
            "provider_id": str(provider_id),
            "reason": reason.value,
            "error": str(e),
        })
        raise PersistenceFailed("Could not record ledger entry, please retry") from e
    session.refresh(entry)

    logger.info({
        "event_type": "wallet_ledger",
        "event_name": "entry_recorded",
        "provider_id": entry.provider_id,
        "amount": entry.amount,
        "reason": entry.reason.value,
        "booking_id": str(entry.booking_id) if entry.booking_id else None,
    })
    return entry


def get_balance(session: Session, provider_id: str) -> float:
    total = session.exec(
        select(func.coalesce(func.sum(WalletLedgerEntryDB.amount), 0.0)).where(
            WalletLedgerEntryDB.provider_id == str(provider_id)
        )
    ).one()
    return round(float(total), 2)


def record_settlement(session: Session, provider_id: str, amount: float) -> WalletLedgerEntryDB:
    """A provider paid the platform: credit the wallet."""
    rounded = round_money(amount)
    if rounded is None or rounded <= 0:
        raise ValidationFailed("Settlement amount must be positive", code="invalid_settlement")
    return record_entry(session, provider_id, rounded, LedgerReason.SETTLEMENT)


def list_entries(
    session: Session, provider_id: str, skip: int = 0, limit: int = 100
) -> list[WalletLedgerEntryDB]:
    statement = (
        select(WalletLedgerEntryDB)
        .where(WalletLedgerEntryDB.provider_id == str(provider_id))
        .order_by(WalletLedgerEntryDB.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(session.exec(statement).all())


def list_balances(session: Session) -> BalancesPublic:
    """Per-provider balances, largest debt first."""
    balance = func.sum(WalletLedgerEntryDB.amount)
    rows = session.exec(
        select(WalletLedgerEntryDB.provider_id, balance)
        .group_by(WalletLedgerEntryDB.provider_id)
        .order_by(balance, WalletLedgerEntryDB.provider_id)
    ).all()

    data = [
        BalancePublic(provider_id=provider_id, balance=round(float(total), 2))
        for provider_id, total in rows
    ]
    total_debt = round(sum(-b.balance for b in data if b.balance < 0), 2)
    return BalancesPublic(data=data, count=len(data), total_debt=total_debt)
