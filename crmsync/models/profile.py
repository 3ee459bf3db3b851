"""Profile model - one health profile per owner."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class Profile(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "sync_profile"

    external_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    # One profile per owner.
    owner_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)

    age: Mapped[int | None] = mapped_column(Integer, default=None)
    gender: Mapped[str | None] = mapped_column(String(20), default=None)
    height_cm: Mapped[float | None] = mapped_column(Float, default=None)
    current_weight_kg: Mapped[float | None] = mapped_column(Float, default=None)
    activity_level: Mapped[str | None] = mapped_column(String(50), default=None)
    primary_goal: Mapped[str | None] = mapped_column(String(100), default=None)
    engagement_tier: Mapped[str] = mapped_column(String(20), default="bronze")
    churn_risk: Mapped[float | None] = mapped_column(Float, default=None)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<Profile {self.owner_id!r}>"
