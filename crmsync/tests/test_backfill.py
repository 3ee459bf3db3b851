"""Test historical backfill through the sync engine."""

from __future__ import annotations

import pytest

from conftest import count_rows
from crmsync.models.goal import Goal
from crmsync.models.sync_record import SyncRecord
from crmsync.schemas.sync import EntityType, Operation, Source
from crmsync.sync.backfill import backfill, record_to_event

GOALS = [
    {"id": "g-1", "user_id": "u1", "goal_type": "weight", "goal_value": 70, "created_at": "2024-01-01"},
    {"id": "g-2", "user_id": "u1", "goal_type": "steps", "goal_value": 10000},
    {"id": "g-3", "user_id": "u2", "goalType": "sleep", "goalUnit": "hours"},
]


def test_record_to_event_splits_identity_from_payload():
    event = record_to_event(EntityType.GOAL, GOALS[0], source=Source.SYSTEM)
    assert event["external_id"] == "g-1"
    assert event["owner_id"] == "u1"
    assert event["operation"] is Operation.CREATE
    assert event["payload"] == {"goal_type": "weight", "goal_value": 70}
    assert event["source"] is Source.SYSTEM
    assert "g-1" not in event["payload"].values()


def test_record_to_event_key_is_stable():
    first = record_to_event(EntityType.GOAL, GOALS[1])
    second = record_to_event(EntityType.GOAL, dict(GOALS[1]))
    assert first["idempotency_key"] == second["idempotency_key"]
    assert first["idempotency_key"] != record_to_event(EntityType.GOAL, GOALS[0])["idempotency_key"]


@pytest.mark.asyncio
async def test_backfill_applies_then_rerun_skips(sync_engine, session_factory):
    report = await backfill(sync_engine, EntityType.GOAL, GOALS)
    assert report.success == 3
    assert report.errors == []
    assert await count_rows(session_factory, Goal) == 3

    rerun = await backfill(sync_engine, EntityType.GOAL, GOALS)
    assert rerun.success == 0
    assert rerun.skipped == 3
    assert await count_rows(session_factory, SyncRecord) == 3


@pytest.mark.asyncio
async def test_backfill_continues_past_bad_records(sync_engine, session_factory):
    records = [
        {"id": "g-1", "user_id": "u1", "goal_value": 70},
        {"id": "g-2", "goal_type": "steps"},
        GOALS[1],
    ]
    report = await backfill(sync_engine, EntityType.GOAL, records)
    assert report.success == 1
    assert len(report.errors) == 2
    assert await count_rows(session_factory, Goal) == 1
