"""Activity model - engagement events logged for an owner."""

from __future__ import annotations

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, SyncedEntityMixin


class Activity(UUIDMixin, TimestampMixin, SyncedEntityMixin, Base):
    __tablename__ = "sync_activity"

    activity_type: Mapped[str] = mapped_column(String(50), default="custom", index=True)  # food_logged, milestone, etc.
    category: Mapped[str] = mapped_column(String(50))  # engagement, warning, achievement
    title: Mapped[str | None] = mapped_column(String(300), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON, default=None)
    severity: Mapped[str] = mapped_column(String(20), default="info")

    def __repr__(self) -> str:
        return f"<Activity {self.activity_type} {self.title!r}>"
