"""
db/models/habit_entry.py

One dated observation for a habit.
"""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base

ENTRY_NATURAL_KEY = "uq_habit_entries_habit_user_date"


class HabitEntry(Base):
    __tablename__ = "habit_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    habit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("habits.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    value: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Normalized 0-3 checkmark code",
    )
    numeric_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="loop_import, loop_per_habit, manual",
    )
    logged_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("habit_id", "user_id", "date", name=ENTRY_NATURAL_KEY),
        Index("ix_habit_entries_user_id", "user_id"),
        Index("ix_habit_entries_habit_id_date", "habit_id", "date"),
    )
