"""Concurrent delivery against a file-backed database."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import count_rows
from crmsync.models.activity import Activity
from crmsync.models.audit import AuditEntry
from crmsync.models.sync_record import SyncRecord
from crmsync.sync.engine import SyncEngine


@pytest.fixture
def file_factory(file_engine):
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.mark.asyncio
async def test_same_key_delivered_concurrently_applies_once(file_factory, make_event):
    engine = SyncEngine(file_factory, timeout=None)
    event = make_event(idempotency_key="race_1")

    results = await asyncio.gather(*(engine.process(event) for _ in range(5)))

    assert sorted(r.status for r in results) == ["skipped"] * 4 + ["success"]
    assert await count_rows(file_factory, Activity) == 1
    assert await count_rows(file_factory, AuditEntry) == 1
    assert await count_rows(file_factory, SyncRecord) == 1


@pytest.mark.asyncio
async def test_distinct_keys_delivered_concurrently_all_apply(file_factory, make_event):
    engine = SyncEngine(file_factory, timeout=None)
    events = [
        make_event(external_id=f"act-{i}", idempotency_key=f"act_{i}")
        for i in range(5)
    ]

    results = await asyncio.gather(*(engine.process(e) for e in events))

    assert [r.status for r in results] == ["success"] * 5
    assert await count_rows(file_factory, Activity) == 5
    assert await count_rows(file_factory, SyncRecord, SyncRecord.processed.is_(True)) == 5
