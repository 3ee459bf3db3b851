"""Change event and sync result schemas."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel


class Source(str, Enum):
    CLIENT = "client"
    SYSTEM = "system"


class EntityType(str, Enum):
    PROFILE = "profile"
    ACTIVITY = "activity"
    GOAL = "goal"


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ActorType(str, Enum):
    OWNER = "owner"
    SYSTEM = "system"
    COUNTERPARTY = "counterparty"


class ChangeEvent(BaseModel):
    """One logical change delivered to the engine. Never mutated."""

    source: Source
    entity_type: EntityType
    external_id: str = Field(min_length=1)
    owner_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("owner_id", "ownerId", "user_id", "userId"),
    )
    operation: Operation
    payload: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str = Field(min_length=1)

    model_config = {
        "frozen": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
        "str_strip_whitespace": True,
    }


class IngressEvent(BaseModel):
    """Webhook body before normalization into a ChangeEvent."""

    entity_type: str | None = None
    operation: str | None = None
    owner_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("owner_id", "ownerId", "user_id", "userId"),
    )
    external_id: str | None = None
    source: str = "client"
    payload: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class SyncResult(BaseModel):
    status: Literal["skipped", "success", "error"]
    data: dict[str, Any] | None = None
    error: str | None = None
    error_type: str | None = None
    field: str | None = None

    @classmethod
    def skipped(cls, data: dict[str, Any] | None = None) -> SyncResult:
        return cls(status="skipped", data=data)

    @classmethod
    def succeeded(cls, data: dict[str, Any] | None) -> SyncResult:
        return cls(status="success", data=data)

    @classmethod
    def failed(cls, message: str, error_type: str, field: str | None = None) -> SyncResult:
        return cls(status="error", error=message, error_type=error_type, field=field)

    @property
    def ok(self) -> bool:
        return self.status != "error"
