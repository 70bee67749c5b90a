"""
Booking outbox dispatcher.

Each pass picks a bounded batch of due rows and makes one delivery attempt per
row. Failures back off exponentially (base^attempts minutes); rows that reach
MAX_ATTEMPTS stay failed until an operator resets them.
"""
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol, Sequence

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from homecare.booking_models import DispatchResult, OutboxEntryDB, OutboxStatus
from homecare.core.config import settings
from homecare.core.logging import logger
from homecare.services.errors import PersistenceFailed
from homecare.utils.timeutils import utcnow

MAX_ATTEMPTS = 5
# The spreadsheet web app answers a successful POST with a redirect
ACCEPTED_REDIRECTS = frozenset({302})
MAX_ERROR_LENGTH = 1000


class DeliveryError(Exception):
    pass


class DeliverySink(Protocol):
    def send(self, payload: dict[str, Any]) -> None:
        """Deliver one payload; raise on any failure."""
        ...


class HttpSink:
    """POSTs payloads as JSON to a configured endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not url:
            raise ValueError("Outbox sink URL is not configured")
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def send(self, payload: dict[str, Any]) -> None:
        with httpx.Client(
            timeout=self.timeout, transport=self.transport, follow_redirects=False
        ) as client:
            response = client.post(self.url, json=payload)

        if response.is_success or response.status_code in ACCEPTED_REDIRECTS:
            return
        raise DeliveryError(f"HTTP {response.status_code}: {response.text[:200]}")


def get_default_sink() -> HttpSink:
    return HttpSink(settings.OUTBOX_SINK_URL, timeout=settings.OUTBOX_SEND_TIMEOUT_SECONDS)


def next_retry_delay(attempts: int, base: int = 2) -> timedelta:
    return timedelta(minutes=base ** attempts)


def select_due_rows(
    session: Session,
    now: datetime,
    ids: Optional[Sequence[uuid.UUID]] = None,
    batch_size: int = 50,
) -> list[OutboxEntryDB]:
    """
    Pending or failed rows under the attempts cap, oldest first. An explicit id
    list skips the next_retry_at gate.
    """
    statement = select(OutboxEntryDB).where(
        col(OutboxEntryDB.status).in_([OutboxStatus.PENDING, OutboxStatus.FAILED]),
        OutboxEntryDB.attempts < MAX_ATTEMPTS,
    )
    if ids:
        statement = statement.where(col(OutboxEntryDB.id).in_(list(ids)))
    else:
        statement = statement.where(OutboxEntryDB.next_retry_at <= now)

    statement = statement.order_by(OutboxEntryDB.created_at).limit(batch_size)
    return list(session.exec(statement).all())


def _mark_sent(row: OutboxEntryDB, now: datetime) -> None:
    row.status = OutboxStatus.SENT
    row.last_error = None
    row.updated_at = now


def _mark_failed(row: OutboxEntryDB, error: str, now: datetime, backoff_base: int) -> None:
    row.attempts += 1
    row.last_error = error[:MAX_ERROR_LENGTH]
    row.next_retry_at = now + next_retry_delay(row.attempts, backoff_base)
    row.status = OutboxStatus.FAILED if row.attempts >= MAX_ATTEMPTS else OutboxStatus.PENDING
    row.updated_at = now


def dispatch_pending(
    session: Session,
    sink: DeliverySink,
    now: Optional[datetime] = None,
    ids: Optional[Sequence[uuid.UUID]] = None,
    batch_size: Optional[int] = None,
    backoff_base: Optional[int] = None,
) -> DispatchResult:
    """Run one dispatch pass. Every row is attempted and committed on its own."""
    now = now or utcnow()
    batch_size = batch_size or settings.OUTBOX_BATCH_SIZE
    backoff_base = backoff_base or settings.OUTBOX_BACKOFF_BASE

    rows = select_due_rows(session, now, ids=ids, batch_size=batch_size)
    if not rows:
        return DispatchResult(processed=0, message="No pending rows")

    sent = failed = 0
    for row in rows:
        row_id = row.id
        delivered = False
        try:
            sink.send(row.payload)
        except Exception as e:  # any send failure counts as one attempt
            _mark_failed(row, str(e) or e.__class__.__name__, now, backoff_base)
            logger.warning({
                "event_type": "booking_outbox",
                "event_name": "delivery_failed",
                "outbox_id": str(row_id),
                "booking_id": str(row.booking_id),
                "attempts": row.attempts,
                "status": row.status.value,
                "next_retry_at": row.next_retry_at,
                "error": row.last_error,
            })
        else:
            _mark_sent(row, now)
            delivered = True

        session.add(row)
        try:
            session.commit()
        except SQLAlchemyError as e:
            # The row keeps its stored state and is picked up by a later pass
            session.rollback()
            logger.error({
                "event_type": "booking_outbox",
                "event_name": "outbox_update_failed",
                "outbox_id": str(row_id),
                "error": str(e),
            })
            continue

        if delivered:
            sent += 1
        else:
            failed += 1

    logger.info({
        "event_type": "booking_outbox",
        "event_name": "dispatch_pass_finished",
        "processed": len(rows),
        "sent": sent,
        "failed": failed,
    })
    return DispatchResult(processed=len(rows), sent=sent, failed=failed)


def reset_for_resend(
    session: Session, ids: Sequence[uuid.UUID], now: Optional[datetime] = None
) -> int:
    """Operator path: give the selected rows a fresh attempt budget."""
    if not ids:
        return 0
    now = now or utcnow()
    rows = session.exec(
        select(OutboxEntryDB).where(col(OutboxEntryDB.id).in_(list(ids)))
    ).all()
    for row in rows:
        row.attempts = 0
        row.status = OutboxStatus.PENDING
        row.next_retry_at = now
        row.updated_at = now
        session.add(row)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error({
            "event_type": "booking_outbox",
            "event_name": "resend_reset_failed",
            "outbox_ids": [str(i) for i in ids],
            "error": str(e),
        })
        raise PersistenceFailed("Could not reset outbox rows, please retry") from e

    logger.info({
        "event_type": "booking_outbox",
        "event_name": "rows_reset_for_resend",
        "count": len(rows),
        "outbox_ids": [str(row.id) for row in rows],
    })
    return len(rows)


def list_rows(
    session: Session,
    status: Optional[OutboxStatus] = None,
    skip: int = 0,
    limit: int = 100,
) -> list[OutboxEntryDB]:
    statement = select(OutboxEntryDB)
    if status:
        statement = statement.where(OutboxEntryDB.status == status)
    statement = statement.order_by(col(OutboxEntryDB.created_at).desc()).offset(skip).limit(limit)
    return list(session.exec(statement).all())
