"""Field-level conflict resolution between client and system versions of an entity.

Everything here is pure: the same inputs always produce the same resolved state,
so it is tested without a database.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Mapping

from ..schemas.sync import EntityType, Source


class FieldOwnership(str, Enum):
    # Stored value wins whenever one is present, regardless of source.
    SYSTEM = "system"
    # Incoming wins from the client; the system may only fill an empty field.
    CLIENT = "client"
    # Last writer wins.
    SHARED = "shared"


OwnershipTable = Mapping[str, FieldOwnership]

PROFILE_OWNERSHIP: dict[str, FieldOwnership] = {
    "age": FieldOwnership.SYSTEM,
    "gender": FieldOwnership.SYSTEM,
    "height_cm": FieldOwnership.SYSTEM,
    "activity_level": FieldOwnership.SYSTEM,
    "engagement_tier": FieldOwnership.SHARED,
    "churn_risk": FieldOwnership.SHARED,
    "last_active_at": FieldOwnership.SHARED,
}

ACTIVITY_OWNERSHIP: dict[str, FieldOwnership] = {
    "activity_type": FieldOwnership.SYSTEM,
    "category": FieldOwnership.SYSTEM,
}

GOAL_OWNERSHIP: dict[str, FieldOwnership] = {
    "goal_type": FieldOwnership.SYSTEM,
    "progress_pct": FieldOwnership.CLIENT,
    "status": FieldOwnership.CLIENT,
    "streak_days": FieldOwnership.CLIENT,
}

OWNERSHIP: dict[EntityType, dict[str, FieldOwnership]] = {
    EntityType.PROFILE: PROFILE_OWNERSHIP,
    EntityType.ACTIVITY: ACTIVITY_OWNERSHIP,
    EntityType.GOAL: GOAL_OWNERSHIP,
}


def _incoming_wins(ownership: FieldOwnership, source: Source, current_value: Any) -> bool:
    if current_value is None:
        return True
    if ownership is FieldOwnership.SYSTEM:
        return False
    if ownership is FieldOwnership.CLIENT:
        return source is Source.CLIENT
    return True


def resolve(
    current: Mapping[str, Any] | None,
    incoming: Mapping[str, Any],
    source: Source,
    *,
    ownership: OwnershipTable | None = None,
) -> dict[str, Any]:
    """Merge an incoming payload into the current state field by field.

    With no current state the incoming payload is taken verbatim. Fields missing
    from ``incoming`` (or sent as None) keep their current value.
    """
    if current is None:
        return dict(incoming)

    table = ownership or {}
    resolved = dict(current)
    for field, value in incoming.items():
        if value is None:
            continue
        rule = table.get(field, FieldOwnership.SHARED)
        if _incoming_wins(rule, source, current.get(field)):
            resolved[field] = value
    return resolved


def conflicts(
    current: Mapping[str, Any] | None,
    incoming: Mapping[str, Any],
    resolved: Mapping[str, Any],
    *,
    normalize: Callable[[str, Any], Any] | None = None,
) -> dict[str, dict[str, Any]]:
    """Fields whose incoming value lost to the stored one.

    ``normalize(field, value)`` maps both sides to a comparable form first, so
    ``"30"`` and ``30`` for an integer field are not reported as a conflict.
    """
    if current is None:
        return {}
    same = normalize or (lambda field, value: value)
    overridden: dict[str, dict[str, Any]] = {}
    for field, value in incoming.items():
        if value is None:
            continue
        if same(field, resolved.get(field)) != same(field, value):
            overridden[field] = {"incoming": value, "kept": resolved.get(field)}
    return overridden
