"""Sync record - the engine's bookkeeping row per idempotency key."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, CreatedAtMixin


class SyncRecord(UUIDMixin, CreatedAtMixin, Base):
    __tablename__ = "sync_record"

    source: Mapped[str] = mapped_column(String(20), index=True)  # client, system
    entity_type: Mapped[str] = mapped_column(String(50), index=True)
    external_id: Mapped[str] = mapped_column(String(100), index=True)
    owner_id: Mapped[str] = mapped_column(String(100), index=True)
    operation: Mapped[str] = mapped_column(String(20))  # create, update, delete
    state_before: Mapped[dict | None] = mapped_column(JSON, default=None)
    state_after: Mapped[dict | None] = mapped_column(JSON, default=None)
    idempotency_key: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    processed: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    error: Mapped[str | None] = mapped_column(Text, default=None)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        state = "processed" if self.processed else "pending"
        return f"<SyncRecord {self.idempotency_key!r} {state}>"
