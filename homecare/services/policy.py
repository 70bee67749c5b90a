"""
Commercial policy (fee, deposit, debt limit) loaded from the settings row and
handed explicitly to the engine.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from homecare.booking_models import PlatformPolicyUpdate, PlatformSettingsDB
from homecare.core.logging import logger
from homecare.utils.timeutils import utcnow


class PlatformPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    fee_percent: float = 10.0
    deposit_percent: float = 20.0
    # None disables the debt-limit check
    debt_limit: Optional[float] = -20.0

    def platform_fee(self, amount: float) -> float:
        return round(amount * self.fee_percent / 100, 2)


def _get_row(session: Session) -> PlatformSettingsDB | None:
    return session.exec(select(PlatformSettingsDB).order_by(PlatformSettingsDB.id)).first()


def load_policy(session: Session) -> PlatformPolicy:
    row = _get_row(session)
    if not row:
        return PlatformPolicy()
    return PlatformPolicy(
        fee_percent=row.fee_percent,
        deposit_percent=row.deposit_percent,
        debt_limit=row.debt_limit,
    )


def update_policy(session: Session, data: PlatformPolicyUpdate) -> PlatformPolicy:
    row = _get_row(session) or PlatformSettingsDB(id=1)

    if data.fee_percent is not None:
        row.fee_percent = data.fee_percent
    if data.deposit_percent is not None:
        row.deposit_percent = data.deposit_percent
    if data.clear_debt_limit:
        row.debt_limit = None
    elif data.debt_limit is not None:
        row.debt_limit = data.debt_limit
    row.updated_at = utcnow()

    session.add(row)
    session.commit()
    session.refresh(row)

    logger.info(
        {
            "event_type": "platform_policy",
            "event_name": "policy_updated",
            "fee_percent": row.fee_percent,
            "deposit_percent": row.deposit_percent,
            "debt_limit": row.debt_limit,
        }
    )
    return load_policy(session)
