"""Historical backfill - replay existing records through the engine as creates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from ..schemas.sync import EntityType, Operation, Source, SyncResult
from .engine import SyncEngine
from .keys import derive_idempotency_key

log = logging.getLogger(__name__)

# Bookkeeping columns from the exporting system that are not part of any payload.
_IDENTITY_KEYS = ("id", "external_id", "externalId")
_OWNER_KEYS = ("owner_id", "ownerId", "user_id", "userId")
_IGNORED_KEYS = ("created_at", "createdAt", "updated_at", "updatedAt")


@dataclass
class BackfillReport:
    results: list[SyncResult] = field(default_factory=list)

    @property
    def success(self) -> int:
        return sum(1 for r in self.results if r.status == "success")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")

    @property
    def errors(self) -> list[str]:
        return [r.error or "unknown error" for r in self.results if r.status == "error"]


def _pop_first(record: dict[str, Any], keys: Iterable[str]) -> Any:
    value = None
    for key in keys:
        candidate = record.pop(key, None)
        if value is None and candidate is not None:
            value = candidate
    return value


def record_to_event(
    entity_type: EntityType,
    record: Mapping[str, Any],
    *,
    source: Source = Source.CLIENT,
) -> dict[str, Any]:
    """Split an exported row into identity, owner and payload.

    The idempotency key is derived from the content, so re-running the same
    backfill skips rows that already went through.
    """
    payload = dict(record)
    external_id = _pop_first(payload, _IDENTITY_KEYS)
    owner_id = _pop_first(payload, _OWNER_KEYS)
    for key in _IGNORED_KEYS:
        payload.pop(key, None)

    external_id = str(external_id) if external_id is not None else ""
    return {
        "source": source,
        "entity_type": entity_type,
        "external_id": external_id,
        "owner_id": str(owner_id) if owner_id is not None else "",
        "operation": Operation.CREATE,
        "payload": payload,
        "idempotency_key": derive_idempotency_key(entity_type, external_id, Operation.CREATE, payload),
    }


async def backfill(
    engine: SyncEngine,
    entity_type: EntityType,
    records: Iterable[Mapping[str, Any]],
    *,
    source: Source = Source.CLIENT,
) -> BackfillReport:
    """Process records one by one; a failing record does not stop the run."""
    report = BackfillReport()
    for record in records:
        result = await engine.process_payload(record_to_event(entity_type, record, source=source))
        if result.status == "error":
            log.warning("Backfill record failed: %s", result.error)
        report.results.append(result)

    log.info(
        "Backfill %s: %d success, %d skipped, %d errors",
        entity_type.value, report.success, report.skipped, len(report.errors),
    )
    return report
