"""Idempotency guard backed by the unique sync_record.idempotency_key column.

No in-memory cache is consulted: the database constraint decides which
attempt owns a key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConflictContention
from ..models.base import utcnow
from ..models.sync_record import SyncRecord
from ..schemas.sync import ChangeEvent

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    already_processed: bool
    reservation_held: bool
    record: SyncRecord


async def get_sync_record(db: AsyncSession, idempotency_key: str) -> SyncRecord | None:
    stmt = select(SyncRecord).where(SyncRecord.idempotency_key == idempotency_key)
    return (await db.execute(stmt)).scalar_one_or_none()


def _event_columns(event: ChangeEvent) -> dict[str, Any]:
    return {
        "source": event.source.value,
        "entity_type": event.entity_type.value,
        "external_id": event.external_id,
        "owner_id": event.owner_id,
        "operation": event.operation.value,
    }


async def check_and_reserve(db: AsyncSession, event: ChangeEvent) -> Reservation:
    """Insert-or-read the sync record for ``event`` inside the caller's transaction.

    Raises ConflictContention when another attempt inserted the key first or
    claimed an unfinished record between our read and our claim.
    """
    key = event.idempotency_key
    record = await get_sync_record(db, key)

    if record is not None and record.processed:
        return Reservation(already_processed=True, reservation_held=False, record=record)

    if record is None:
        record = SyncRecord(idempotency_key=key, processed=False, attempts=0, **_event_columns(event))
        db.add(record)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictContention(key) from exc
        return Reservation(already_processed=False, reservation_held=True, record=record)

    # An earlier attempt failed or was abandoned. Claim it only if nobody else
    # finished or re-claimed it since we read it.
    log.info("Retrying unfinished sync %s (attempts=%d)", key, record.attempts)
    stmt = (
        update(SyncRecord)
        .where(
            SyncRecord.id == record.id,
            SyncRecord.processed.is_(False),
            SyncRecord.attempts == record.attempts,
        )
        .values(error=None, **_event_columns(event))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        raise ConflictContention(key)
    await db.refresh(record)
    return Reservation(already_processed=False, reservation_held=True, record=record)


async def finalize_success(
    db: AsyncSession,
    record: SyncRecord,
    *,
    state_before: dict[str, Any] | None,
    state_after: dict[str, Any] | None,
) -> SyncRecord:
    """Mark the reserved record processed. It is immutable from here on."""
    record.state_before = state_before
    record.state_after = state_after
    record.processed = True
    record.error = None
    record.attempts = record.attempts + 1
    record.processed_at = utcnow()
    await db.flush()
    return record


async def record_failure(db: AsyncSession, event: ChangeEvent, message: str) -> SyncRecord | None:
    """Store a failed attempt as an unprocessed record. Returns None if the key
    was completed by another attempt in the meantime."""
    record = await get_sync_record(db, event.idempotency_key)
    if record is None:
        record = SyncRecord(
            idempotency_key=event.idempotency_key,
            processed=False,
            attempts=1,
            error=message,
            **_event_columns(event),
        )
        db.add(record)
        await db.flush()
        return record
    if record.processed:
        return None

    # Only an unfinished record may take the failure; a processed one is final.
    stmt = (
        update(SyncRecord)
        .where(SyncRecord.id == record.id, SyncRecord.processed.is_(False))
        .values(error=message, attempts=SyncRecord.attempts + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        log.info("Not recording failure for %s: completed by another attempt", event.idempotency_key)
        return None
    await db.refresh(record)
    return record
