"""Entity state loading and snapshotting."""

from __future__ import annotations

from typing import Any, assert_never

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity import Activity
from ..models.goal import Goal
from ..models.profile import Profile
from ..schemas.entities import schema_for
from ..schemas.sync import EntityType
from .serialization import to_jsonable

EntityRow = Profile | Activity | Goal

# Payload field -> model attribute, where they differ.
ATTR_OVERRIDES: dict[str, str] = {"metadata": "metadata_json"}


def attr_name(field: str) -> str:
    return ATTR_OVERRIDES.get(field, field)


def model_for(entity_type: EntityType) -> type[EntityRow]:
    match entity_type:
        case EntityType.PROFILE:
            return Profile
        case EntityType.ACTIVITY:
            return Activity
        case EntityType.GOAL:
            return Goal
        case _:
            assert_never(entity_type)


async def load_entity(
    db: AsyncSession,
    entity_type: EntityType,
    external_id: str,
    owner_id: str | None = None,
) -> EntityRow | None:
    """Read the current row for an entity, or None if it does not exist yet.

    Rows are selected FOR UPDATE where the backend supports it so two
    conflicting events on one entity serialize inside their transactions.
    Profiles are unique per owner, so they fall back to an owner lookup.
    """
    model = model_for(entity_type)
    stmt = select(model).where(model.external_id == external_id).with_for_update()
    row = (await db.execute(stmt)).scalar_one_or_none()
    if row is None and entity_type is EntityType.PROFILE and owner_id:
        stmt = select(Profile).where(Profile.owner_id == owner_id).with_for_update()
        row = (await db.execute(stmt)).scalar_one_or_none()
    return row


def entity_state(entity_type: EntityType, row: EntityRow) -> dict[str, Any]:
    """Syncable fields of a row, JSON-safe. This is what conflict resolution merges."""
    return {
        field: to_jsonable(getattr(row, attr_name(field)))
        for field in schema_for(entity_type).model_fields
    }


def entity_snapshot(entity_type: EntityType, row: EntityRow) -> dict[str, Any]:
    """Full JSON view of a row: identity plus syncable fields."""
    return {
        "id": str(row.id),
        "external_id": row.external_id,
        "owner_id": row.owner_id,
        **entity_state(entity_type, row),
    }
