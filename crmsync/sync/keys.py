"""Idempotency key generation."""

from __future__ import annotations

import hashlib
import time
from typing import Any

from ..schemas.sync import EntityType, Operation
from .serialization import canonical_json


def _value(item: Any) -> str:
    return item.value if isinstance(item, (EntityType, Operation)) else str(item)


def generate_idempotency_key(
    entity_type: EntityType | str,
    external_id: str,
    operation: Operation | str,
    at: float | None = None,
) -> str:
    """Fresh key for a brand-new logical change (unique per call).

    Callers must reuse the returned key when retrying the same change.
    """
    stamp = time.time_ns() if at is None else int(at * 1_000_000_000)
    raw = f"{_value(entity_type)}:{external_id}:{_value(operation)}:{stamp}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def derive_idempotency_key(
    entity_type: EntityType | str,
    external_id: str,
    operation: Operation | str,
    payload: dict[str, Any] | None = None,
) -> str:
    """Content-derived key: identical changes always map to the same key."""
    raw = canonical_json({
        "entity_type": _value(entity_type),
        "external_id": external_id,
        "operation": _value(operation),
        "payload": payload or {},
    })
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
