"""Sync engine error taxonomy."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync engine failures."""

    error_type = "internal"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(SyncError):
    """Malformed event or payload. Never retried automatically."""

    error_type = "validation"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class ConflictContention(SyncError):
    """Another attempt holds or has finished the same idempotency key."""

    error_type = "contention"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"Concurrent attempt on idempotency key {idempotency_key!r}")


class PersistenceError(SyncError):
    """Transaction or connection failure. Safe to retry."""

    error_type = "persistence"


class ApplierError(SyncError):
    """Entity-specific business rule violation."""

    error_type = "applier"

    def __init__(self, message: str, entity_type: str | None = None, external_id: str | None = None):
        self.entity_type = entity_type
        self.external_id = external_id
        super().__init__(message)
