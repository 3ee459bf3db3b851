"""Goal model - health goals and their progress."""

from __future__ import annotations

from datetime import date

from sqlalchemy import Date, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, SyncedEntityMixin


class Goal(UUIDMixin, TimestampMixin, SyncedEntityMixin, Base):
    __tablename__ = "sync_goal"

    goal_type: Mapped[str] = mapped_column(String(50))  # weight, nutrition, activity, water, sleep
    goal_value: Mapped[float | None] = mapped_column(Float, default=None)
    goal_unit: Mapped[str | None] = mapped_column(String(20), default=None)  # kg, g, kcal, steps
    target_date: Mapped[date | None] = mapped_column(Date, default=None)
    progress_pct: Mapped[float | None] = mapped_column(Float, default=None)
    status: Mapped[str] = mapped_column(String(20), default="active")
    streak_days: Mapped[int] = mapped_column(Integer, default=0)
    priority: Mapped[str] = mapped_column(String(20), default="medium")

    def __repr__(self) -> str:
        return f"<Goal {self.goal_type} ({self.status})>"
