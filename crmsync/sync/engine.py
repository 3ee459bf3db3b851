"""Sync orchestrator - applies one change event exactly once.

Every attempt runs guard -> load -> resolve -> apply -> audit -> finalize in a
single transaction. Any failure rolls the whole attempt back; the failure is
then recorded in a separate transaction as an unprocessed sync record so the
same idempotency key can be retried.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..errors import ConflictContention, PersistenceError, SyncError
from ..schemas.entities import coerce_field, normalize_payload, schema_for
from ..schemas.sync import ActorType, ChangeEvent, Operation, SyncResult
from .appliers import EntityApplier, applier_for
from .audit import AuditLogger, AuditWriter, actor_for
from .idempotency import check_and_reserve, finalize_success, get_sync_record, record_failure
from .loader import entity_snapshot, entity_state, load_entity
from .resolver import OWNERSHIP, conflicts, resolve

log = logging.getLogger(__name__)

_DEFAULT = object()


class SyncEngine:
    """Public entry point: ``await engine.process(event)``.

    Holds no per-event state, so one instance may serve any number of
    concurrent callers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        audit: AuditWriter | None = None,
        appliers: Mapping[Any, EntityApplier] | None = None,
        timeout: float | None | object = _DEFAULT,
        max_contention_retries: int | None = None,
    ):
        self._session_factory = session_factory
        self._audit = audit or AuditLogger()
        self._appliers = dict(appliers or {})
        self._timeout = settings.process_timeout if timeout is _DEFAULT else timeout
        self._max_retries = (
            settings.max_contention_retries if max_contention_retries is None else max_contention_retries
        )

    def applier(self, entity_type) -> EntityApplier:
        return self._appliers.get(entity_type) or applier_for(entity_type)

    async def process_payload(self, data: Mapping[str, Any], *, timeout: Any = _DEFAULT) -> SyncResult:
        """Build a ChangeEvent from raw data and process it; malformed events become validation errors."""
        try:
            event = ChangeEvent.model_validate(dict(data))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = to_snake(str(first["loc"][0])) if first.get("loc") else None
            log.info("Rejected malformed change event: %s", exc)
            return SyncResult.failed(
                f"Invalid change event field {field!r}: {first['msg']}", "validation", field
            )
        return await self.process(event, timeout=timeout)

    async def process(self, event: ChangeEvent, *, timeout: Any = _DEFAULT) -> SyncResult:
        deadline = self._timeout if timeout is _DEFAULT else timeout
        try:
            # A non-positive deadline disables it, as process_timeout_seconds does.
            if deadline is None or deadline <= 0:
                return await self._process(event)
            return await asyncio.wait_for(self._process(event), deadline)
        except asyncio.TimeoutError:
            log.warning("Sync timed out after %ss: %s", deadline, event.idempotency_key)
            return SyncResult.failed(f"Sync timed out after {deadline}s", "timeout")

    async def _process(self, event: ChangeEvent) -> SyncResult:
        for _ in range(self._max_retries + 1):
            try:
                return await self._attempt(event)
            except ConflictContention:
                log.info("Contention on %s, re-reading", event.idempotency_key)
                async with self._session_factory() as db:
                    record = await get_sync_record(db, event.idempotency_key)
                if record is not None and record.processed:
                    log.info("Idempotent skip: %s", event.idempotency_key)
                    return SyncResult.skipped(record.state_after)
                # The other attempt did not complete; try again ourselves.
        return SyncResult.failed(
            f"Gave up on {event.idempotency_key!r} after repeated contention", "contention"
        )

    async def _attempt(self, event: ChangeEvent) -> SyncResult:
        failure: SyncError
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    reservation = await check_and_reserve(db, event)
                    if reservation.already_processed:
                        log.info("Idempotent skip: %s", event.idempotency_key)
                        return SyncResult.skipped(reservation.record.state_after)
                    data = await self._apply(db, event, reservation.record)
        except ConflictContention:
            raise
        except SyncError as exc:
            log.warning("Sync failed (%s) for %s: %s", exc.error_type, event.idempotency_key, exc.message)
            failure = exc
        except SQLAlchemyError as exc:
            log.error("Persistence error for %s", event.idempotency_key, exc_info=True)
            failure = PersistenceError(str(exc))
        except Exception as exc:
            log.exception("Unexpected sync failure for %s", event.idempotency_key)
            failure = SyncError(str(exc) or type(exc).__name__)
        else:
            log.info(
                "Success: %s %s %s %s",
                event.source.value, event.operation.value, event.entity_type.value, event.external_id,
            )
            return SyncResult.succeeded(data)

        await self._record_failure(event, failure)
        return SyncResult.failed(failure.message, failure.error_type, getattr(failure, "field", None))

    async def _apply(self, db: AsyncSession, event: ChangeEvent, record) -> dict[str, Any]:
        applier = self.applier(event.entity_type)
        row = await load_entity(db, event.entity_type, event.external_id, owner_id=event.owner_id)
        state_before = entity_snapshot(event.entity_type, row) if row is not None else None

        overridden: dict[str, Any] = {}
        resolved = None
        if event.operation is not Operation.DELETE:
            incoming = normalize_payload(event.entity_type, event.payload)
            current = entity_state(event.entity_type, row) if row is not None else None
            resolved = resolve(
                current, incoming, event.source, ownership=OWNERSHIP[event.entity_type]
            )
            overridden = conflicts(
                current, incoming, resolved, normalize=partial(coerce_field, schema_for(event.entity_type))
            )

        change = await applier.apply(db, event, resolved, row)

        await self._audit.record(
            db,
            owner_id=event.owner_id,
            action=event.operation.value,
            entity_type=event.entity_type.value,
            entity_id=change.entity_id,
            actor=actor_for(event.source),
            details={
                "source": event.source.value,
                "external_id": event.external_id,
                "idempotency_key": event.idempotency_key,
                "fields": change.fields,
                "resolved": bool(overridden),
            },
        )
        if overridden:
            await self._audit.record(
                db,
                owner_id=event.owner_id,
                action="conflict_resolved",
                entity_type=event.entity_type.value,
                entity_id=change.entity_id,
                actor=ActorType.SYSTEM,
                details={"source": event.source.value, "overridden": overridden},
            )

        await finalize_success(db, record, state_before=state_before, state_after=change.state)
        return change.state

    async def _record_failure(self, event: ChangeEvent, failure: SyncError) -> None:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    record = await record_failure(db, event, failure.message)
                    if record is None:
                        return
                    await self._audit.record(
                        db,
                        owner_id=event.owner_id,
                        action="reject",
                        entity_type=event.entity_type.value,
                        entity_id=None,
                        actor=ActorType.SYSTEM,
                        details={
                            "source": event.source.value,
                            "external_id": event.external_id,
                            "operation": event.operation.value,
                            "idempotency_key": event.idempotency_key,
                            "error": failure.message,
                            "error_type": failure.error_type,
                            "field": getattr(failure, "field", None),
                        },
                    )
        except SQLAlchemyError:
            log.exception("Could not record failed sync attempt %s", event.idempotency_key)
