"""Sync models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, CreatedAtMixin, TimestampMixin, SyncedEntityMixin
from .sync_record import SyncRecord
from .audit import AuditEntry
from .profile import Profile
from .activity import Activity
from .goal import Goal

__all__ = [
    "Base",
    "UUIDMixin",
    "CreatedAtMixin",
    "TimestampMixin",
    "SyncedEntityMixin",
    "SyncRecord",
    "AuditEntry",
    "Profile",
    "Activity",
    "Goal",
]
