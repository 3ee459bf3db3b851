"""Per-entity payload schemas validated at the applier boundary."""

from __future__ import annotations

from datetime import date, datetime
from functools import lru_cache
from typing import Any, Literal, assert_never

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .sync import EntityType


class EntityPayload(BaseModel):
    """Unknown fields are rejected so typos never become silent no-ops."""

    model_config = {
        "extra": "forbid",
        "alias_generator": to_camel,
        "populate_by_name": True,
        "str_strip_whitespace": True,
    }


class ProfilePayload(EntityPayload):
    age: int | None = Field(default=None, ge=0, le=150)
    gender: str | None = None
    height_cm: float | None = Field(default=None, gt=0)
    current_weight_kg: float | None = Field(default=None, gt=0)
    activity_level: Literal[
        "sedentary", "lightly_active", "moderately_active", "very_active", "extra_active"
    ] | None = None
    primary_goal: str | None = None
    engagement_tier: Literal["bronze", "silver", "gold", "platinum"] | None = None
    churn_risk: float | None = Field(default=None, ge=0, le=1)
    last_active_at: datetime | None = None


class ActivityPayload(EntityPayload):
    activity_type: str | None = None
    category: str = Field(min_length=1)
    title: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None
    severity: Literal["info", "warning", "critical"] | None = None


class GoalPayload(EntityPayload):
    goal_type: str = Field(min_length=1)
    goal_value: float | None = None
    goal_unit: str | None = None
    target_date: date | None = None
    progress_pct: float | None = Field(default=None, ge=0, le=100)
    status: Literal["active", "paused", "achieved", "abandoned"] | None = None
    streak_days: int | None = Field(default=None, ge=0)
    priority: Literal["low", "medium", "high"] | None = None


def schema_for(entity_type: EntityType) -> type[EntityPayload]:
    match entity_type:
        case EntityType.PROFILE:
            return ProfilePayload
        case EntityType.ACTIVITY:
            return ActivityPayload
        case EntityType.GOAL:
            return GoalPayload
        case _:
            assert_never(entity_type)


def field_name(schema: type[EntityPayload], key: str) -> str:
    """Field name for a payload key given either by name or by camelCase alias."""
    if key in schema.model_fields:
        return key
    for name, info in schema.model_fields.items():
        if info.alias == key:
            return name
    return key


@lru_cache(maxsize=None)
def _field_adapter(schema: type[EntityPayload], name: str) -> TypeAdapter:
    return TypeAdapter(schema.model_fields[name].annotation)


def coerce_field(schema: type[EntityPayload], name: str, value: Any) -> Any:
    """A field value as the payload schema would parse it.

    Unknown fields and values that fail validation are returned unchanged.
    """
    if value is None or name not in schema.model_fields:
        return value
    try:
        return _field_adapter(schema, name).validate_python(value)
    except PydanticValidationError:
        return value


def normalize_payload(entity_type: EntityType, payload: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase keys onto field names. Unknown keys pass through for validation to reject."""
    schema = schema_for(entity_type)
    return {field_name(schema, key): value for key, value in payload.items()}


def food_log_to_activity(payload: dict[str, Any]) -> dict[str, Any]:
    """Food logs arrive from the client app and are stored as activities."""
    macros = {k: payload.get(k) for k in ("calories", "protein", "carbs", "fat")}
    return {
        "activity_type": "food_logged",
        "category": "engagement",
        "title": payload.get("food_name") or payload.get("foodName"),
        "description": (
            f"{macros['calories']} kcal | P: {macros['protein']}g "
            f"C: {macros['carbs']}g F: {macros['fat']}g"
        ),
        "metadata": macros,
    }
