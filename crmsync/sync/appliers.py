"""Entity appliers - turn a resolved state into inserts, updates and deletes.

There is one applier per EntityType; ``applier_for`` dispatches over the closed
set so adding an entity type without an applier fails type checking.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, assert_never

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ApplierError, ValidationError
from ..models.activity import Activity
from ..models.base import utcnow
from ..models.goal import Goal
from ..models.profile import Profile
from ..schemas.entities import (
    ActivityPayload,
    EntityPayload,
    GoalPayload,
    ProfilePayload,
    field_name,
    normalize_payload,
)
from ..schemas.sync import ChangeEvent, EntityType, Operation, Source
from .loader import EntityRow, attr_name, entity_snapshot


@dataclass
class AppliedChange:
    entity_id: uuid.UUID
    state: dict[str, Any]
    fields: list[str] = field(default_factory=list)


def _first_error_field(schema: type[EntityPayload], exc: PydanticValidationError) -> str | None:
    for error in exc.errors():
        loc = error.get("loc") or ()
        if loc:
            return field_name(schema, str(loc[0]))
    return None


class EntityApplier:
    """Common insert/update/delete mechanics; subclasses bind a model and schema."""

    entity_type: EntityType
    model: type[EntityRow]
    schema: type[EntityPayload]

    def validate(self, resolved: dict[str, Any]) -> dict[str, Any]:
        """Validate a resolved state. Returns typed values for the columns it sets."""
        try:
            payload = self.schema.model_validate(resolved)
        except PydanticValidationError as exc:
            name = _first_error_field(self.schema, exc)
            first = exc.errors()[0]
            raise ValidationError(
                f"Invalid {self.entity_type.value} field {name!r}: {first['msg']}",
                field=name,
            ) from exc
        return {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}

    async def apply(
        self,
        db: AsyncSession,
        event: ChangeEvent,
        resolved: dict[str, Any] | None,
        row: EntityRow | None,
    ) -> AppliedChange:
        if row is not None and row.owner_id != event.owner_id:
            raise ApplierError(
                f"{self.entity_type.value} {event.external_id!r} belongs to a different owner",
                entity_type=self.entity_type.value,
                external_id=event.external_id,
            )

        match event.operation:
            case Operation.DELETE:
                return await self.delete(db, event, row)
            case Operation.CREATE if row is None:
                return await self.create(db, event, self.validate(resolved or {}))
            case Operation.CREATE | Operation.UPDATE:
                return await self.update(db, event, self.validate(resolved or {}), row)
            case _:
                assert_never(event.operation)

    async def create(self, db: AsyncSession, event: ChangeEvent, values: dict[str, Any]) -> AppliedChange:
        row = self.model(
            external_id=event.external_id,
            owner_id=event.owner_id,
            **{attr_name(k): v for k, v in values.items()},
        )
        db.add(row)
        await db.flush()
        return AppliedChange(row.id, entity_snapshot(self.entity_type, row), sorted(values))

    async def update(
        self,
        db: AsyncSession,
        event: ChangeEvent,
        values: dict[str, Any],
        row: EntityRow | None,
    ) -> AppliedChange:
        if row is None:
            raise ApplierError(
                f"Cannot update {self.entity_type.value} {event.external_id!r}: not found",
                entity_type=self.entity_type.value,
                external_id=event.external_id,
            )
        changed = []
        for key, value in values.items():
            attr = attr_name(key)
            if getattr(row, attr) != value:
                changed.append(key)
            setattr(row, attr, value)
        await db.flush()
        return AppliedChange(row.id, entity_snapshot(self.entity_type, row), sorted(changed))

    async def delete(self, db: AsyncSession, event: ChangeEvent, row: EntityRow | None) -> AppliedChange:
        if row is None:
            raise ApplierError(
                f"Cannot delete {self.entity_type.value} {event.external_id!r}: not found",
                entity_type=self.entity_type.value,
                external_id=event.external_id,
            )
        entity_id = row.id
        state = {**entity_snapshot(self.entity_type, row), "deleted": True}
        await db.delete(row)
        await db.flush()
        return AppliedChange(entity_id, state)


class ProfileApplier(EntityApplier):
    entity_type = EntityType.PROFILE
    model = Profile
    schema = ProfilePayload

    async def update(self, db, event, values, row):
        # A client update counts as owner activity unless it reports its own timestamp.
        if row is not None and event.source is Source.CLIENT:
            incoming = normalize_payload(self.entity_type, event.payload)
            if incoming.get("last_active_at") is None:
                values = {**values, "last_active_at": utcnow()}
        return await super().update(db, event, values, row)


class ActivityApplier(EntityApplier):
    entity_type = EntityType.ACTIVITY
    model = Activity
    schema = ActivityPayload


class GoalApplier(EntityApplier):
    entity_type = EntityType.GOAL
    model = Goal
    schema = GoalPayload


PROFILE_APPLIER = ProfileApplier()
ACTIVITY_APPLIER = ActivityApplier()
GOAL_APPLIER = GoalApplier()


def applier_for(entity_type: EntityType) -> EntityApplier:
    match entity_type:
        case EntityType.PROFILE:
            return PROFILE_APPLIER
        case EntityType.ACTIVITY:
            return ACTIVITY_APPLIER
        case EntityType.GOAL:
            return GOAL_APPLIER
        case _:
            assert_never(entity_type)
