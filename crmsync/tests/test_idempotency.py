"""Test the idempotency guard directly against the sync_record table."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import fetch_one
from crmsync.errors import ConflictContention
from crmsync.models.sync_record import SyncRecord
from crmsync.sync.idempotency import (
    check_and_reserve,
    finalize_success,
    get_sync_record,
    record_failure,
)


@pytest.mark.asyncio
async def test_first_sight_inserts_unprocessed_record(session_factory, make_event):
    event = make_event()
    async with session_factory() as db:
        async with db.begin():
            reservation = await check_and_reserve(db, event)
            assert reservation.reservation_held
            assert not reservation.already_processed
            assert reservation.record.processed is False

    record = await fetch_one(session_factory, SyncRecord, SyncRecord.idempotency_key == "act_1")
    assert record.entity_type == "activity"
    assert record.operation == "create"
    assert record.attempts == 0


@pytest.mark.asyncio
async def test_finalized_record_reports_already_processed(session_factory, make_event):
    event = make_event()
    async with session_factory() as db:
        async with db.begin():
            reservation = await check_and_reserve(db, event)
            await finalize_success(db, reservation.record, state_before=None, state_after={"title": "Lunch"})

    async with session_factory() as db:
        async with db.begin():
            again = await check_and_reserve(db, event)
    assert again.already_processed
    assert not again.reservation_held
    assert again.record.state_after == {"title": "Lunch"}
    assert again.record.processed_at is not None


@pytest.mark.asyncio
async def test_rolled_back_reservation_leaves_no_record(session_factory, make_event):
    event = make_event()
    async with session_factory() as db:
        await db.begin()
        await check_and_reserve(db, event)
        await db.rollback()

    assert await fetch_one(session_factory, SyncRecord) is None


@pytest.mark.asyncio
async def test_unfinished_record_is_reclaimed(session_factory, make_event):
    event = make_event()
    async with session_factory() as db:
        async with db.begin():
            await record_failure(db, event, "first try failed")

    async with session_factory() as db:
        async with db.begin():
            reservation = await check_and_reserve(db, event)
            assert reservation.reservation_held
            assert reservation.record.error is None
            assert reservation.record.attempts == 1


@pytest.mark.asyncio
async def test_claim_lost_to_another_attempt_is_contention(file_engine, make_event):
    factory = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
    event = make_event()
    async with factory() as db:
        async with db.begin():
            await record_failure(db, event, "first try failed")

    async with factory() as db:
        # Holding the row keeps it in the identity map, so our view goes stale
        # once another attempt bumps it.
        stale = await get_sync_record(db, event.idempotency_key)
        assert stale.attempts == 1
        async with factory() as other:
            async with other.begin():
                await record_failure(other, event, "second try failed")

        with pytest.raises(ConflictContention):
            await check_and_reserve(db, event)
        assert stale.attempts == 1
        await db.rollback()

    record = await fetch_one(factory, SyncRecord)
    assert record.attempts == 2
    assert record.error == "second try failed"


@pytest.mark.asyncio
async def test_failure_loses_to_attempt_that_finished_meanwhile(file_engine, make_event, monkeypatch):
    from crmsync.sync import idempotency

    factory = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
    event = make_event()
    async with factory() as db:
        async with db.begin():
            await record_failure(db, event, "first try failed")

    real_get = idempotency.get_sync_record
    finished = []

    async def read_then_let_redelivery_finish(db, key):
        record = await real_get(db, key)
        if not finished:
            finished.append(key)
            async with factory() as other:
                async with other.begin():
                    reservation = await check_and_reserve(other, event)
                    await finalize_success(
                        other, reservation.record, state_before=None, state_after={"title": "Lunch"}
                    )
        return record

    monkeypatch.setattr(idempotency, "get_sync_record", read_then_let_redelivery_finish)

    async with factory() as db:
        async with db.begin():
            assert await record_failure(db, event, "late failure") is None

    record = await fetch_one(factory, SyncRecord)
    assert record.processed is True
    assert record.error is None
    assert record.attempts == 2
    assert record.state_after == {"title": "Lunch"}


@pytest.mark.asyncio
async def test_record_failure_counts_attempts(session_factory, make_event):
    event = make_event()
    for message in ("boom", "boom again"):
        async with session_factory() as db:
            async with db.begin():
                await record_failure(db, event, message)

    record = await fetch_one(session_factory, SyncRecord)
    assert record.processed is False
    assert record.error == "boom again"
    assert record.attempts == 2


@pytest.mark.asyncio
async def test_record_failure_never_touches_processed_record(session_factory, make_event):
    event = make_event()
    async with session_factory() as db:
        async with db.begin():
            reservation = await check_and_reserve(db, event)
            await finalize_success(db, reservation.record, state_before=None, state_after={})

    async with session_factory() as db:
        async with db.begin():
            assert await record_failure(db, event, "late failure") is None

    record = await fetch_one(session_factory, SyncRecord)
    assert record.processed is True
    assert record.error is None
