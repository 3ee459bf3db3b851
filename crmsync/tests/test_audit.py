"""Test audit writers and queries."""

from __future__ import annotations

import uuid
from datetime import date

import pytest

from crmsync.models.audit import AuditEntry
from crmsync.schemas.sync import ActorType, Source
from crmsync.sync.audit import AuditLogger, InMemoryAuditRecorder, actor_for, list_entries


def test_actor_for_source():
    assert actor_for(Source.CLIENT) is ActorType.OWNER
    assert actor_for(Source.SYSTEM) is ActorType.COUNTERPARTY


@pytest.mark.asyncio
async def test_logger_writes_json_safe_details(db):
    entity_id = uuid.uuid4()
    await AuditLogger().record(
        db,
        owner_id="u1",
        action="update",
        entity_type="goal",
        entity_id=entity_id,
        actor=ActorType.OWNER,
        details={"target_date": date(2025, 1, 31), "source": Source.CLIENT},
    )
    await db.commit()

    entries = await list_entries(db, owner_id="u1")
    assert len(entries) == 1
    assert isinstance(entries[0], AuditEntry)
    assert entries[0].entity_id == entity_id
    assert entries[0].actor == "owner"
    assert entries[0].details == {"target_date": "2025-01-31", "source": "client"}


@pytest.mark.asyncio
async def test_list_entries_filters(db):
    logger = AuditLogger()
    for owner, action in (("u1", "create"), ("u1", "reject"), ("u2", "create")):
        await logger.record(
            db, owner_id=owner, action=action, entity_type="activity",
            entity_id=None, actor=ActorType.SYSTEM,
        )
    await db.commit()

    assert len(await list_entries(db)) == 3
    assert len(await list_entries(db, action="create")) == 2
    assert [e.action for e in await list_entries(db, owner_id="u1", action="reject")] == ["reject"]
    assert len(await list_entries(db, limit=1)) == 1


@pytest.mark.asyncio
async def test_in_memory_recorder_keeps_entries_after_rollback(db):
    recorder = InMemoryAuditRecorder()
    await recorder.record(
        db, owner_id="u1", action="create", entity_type="goal",
        entity_id=None, actor=ActorType.OWNER, details={"fields": ["goal_type"]},
    )
    await db.rollback()
    assert recorder.actions() == ["create"]
    assert recorder.entries[0].details == {"fields": ["goal_type"]}
