"""Sync record service - lookups for the API and CLI."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.sync_record import SyncRecord
from ..sync.serialization import to_jsonable


async def get_record(db: AsyncSession, idempotency_key: str) -> SyncRecord | None:
    stmt = select(SyncRecord).where(SyncRecord.idempotency_key == idempotency_key)
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_records(
    db: AsyncSession,
    *,
    owner_id: str | None = None,
    processed: bool | None = None,
    limit: int = 50,
) -> list[SyncRecord]:
    stmt = select(SyncRecord)
    if owner_id:
        stmt = stmt.where(SyncRecord.owner_id == owner_id)
    if processed is not None:
        stmt = stmt.where(SyncRecord.processed.is_(processed))
    stmt = stmt.order_by(SyncRecord.created_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


def record_to_dict(record: SyncRecord) -> dict:
    return to_jsonable({
        "id": record.id,
        "source": record.source,
        "entity_type": record.entity_type,
        "external_id": record.external_id,
        "owner_id": record.owner_id,
        "operation": record.operation,
        "state_before": record.state_before,
        "state_after": record.state_after,
        "idempotency_key": record.idempotency_key,
        "processed": record.processed,
        "error": record.error,
        "attempts": record.attempts,
        "created_at": record.created_at,
        "processed_at": record.processed_at,
    })
