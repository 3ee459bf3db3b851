"""Audit trail writers.

The engine receives its writer by injection. ``AuditLogger`` persists entries in
the caller's transaction, so a failed audit write fails the whole unit of work.
``InMemoryAuditRecorder`` keeps entries in a list for tests.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.audit import AuditEntry
from ..schemas.sync import ActorType, Source
from .serialization import to_jsonable


class AuditWriter(Protocol):
    async def record(
        self,
        db: AsyncSession,
        *,
        owner_id: str,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID | None,
        actor: ActorType,
        details: dict[str, Any] | None = None,
    ) -> None: ...


def actor_for(source: Source) -> ActorType:
    """Who applied a change: the owner's client app or the counterparty system of record."""
    return ActorType.OWNER if source is Source.CLIENT else ActorType.COUNTERPARTY


class AuditLogger:
    """Append audit entries to the database within the current transaction."""

    async def record(
        self,
        db: AsyncSession,
        *,
        owner_id: str,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID | None,
        actor: ActorType,
        details: dict[str, Any] | None = None,
    ) -> None:
        db.add(
            AuditEntry(
                owner_id=owner_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor=actor.value,
                details=to_jsonable(details or {}),
            )
        )
        await db.flush()


@dataclass
class RecordedEntry:
    owner_id: str
    action: str
    entity_type: str
    entity_id: uuid.UUID | None
    actor: ActorType
    details: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryAuditRecorder:
    """Audit writer that keeps entries in memory. Entries survive rollbacks."""

    def __init__(self) -> None:
        self.entries: list[RecordedEntry] = []

    async def record(
        self,
        db: AsyncSession,
        *,
        owner_id: str,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID | None,
        actor: ActorType,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.entries.append(
            RecordedEntry(
                owner_id=owner_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor=actor,
                details=to_jsonable(details or {}),
            )
        )

    def actions(self) -> list[str]:
        return [entry.action for entry in self.entries]


async def list_entries(
    db: AsyncSession,
    *,
    owner_id: str | None = None,
    entity_id: uuid.UUID | None = None,
    action: str | None = None,
    limit: int = 50,
) -> list[AuditEntry]:
    stmt = select(AuditEntry)
    if owner_id:
        stmt = stmt.where(AuditEntry.owner_id == owner_id)
    if entity_id:
        stmt = stmt.where(AuditEntry.entity_id == entity_id)
    if action:
        stmt = stmt.where(AuditEntry.action == action)
    stmt = stmt.order_by(AuditEntry.created_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
