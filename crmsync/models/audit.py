"""Audit entry model - append-only trail of sync engine decisions."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, CreatedAtMixin


class AuditEntry(UUIDMixin, CreatedAtMixin, Base):
    __tablename__ = "sync_audit_entry"

    owner_id: Mapped[str] = mapped_column(String(100), index=True)
    action: Mapped[str] = mapped_column(String(50), index=True)  # create, update, delete, conflict_resolved, reject
    entity_type: Mapped[str] = mapped_column(String(50), index=True)
    entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None, index=True)
    actor: Mapped[str] = mapped_column(String(20))  # owner, system, counterparty
    details: Mapped[dict | None] = mapped_column(JSON, default=None)

    def __repr__(self) -> str:
        return f"<AuditEntry {self.action} {self.entity_type}>"
