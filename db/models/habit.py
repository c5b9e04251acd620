"""
db/models/habit.py

Trackable habit owned by one user.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.domain.habit_import import Polarity
from db.base import Base, TimestampMixin


class Habit(Base, TimestampMixin):
    __tablename__ = "habits"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Stable id from the identity provider",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Normalized name used for per-user uniqueness",
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="General")
    type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="build",
        comment="build, break",
    )
    measurement_type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="boolean",
        comment="boolean, count, duration, rating",
    )
    polarity: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=Polarity.POSITIVE.value,
        comment="positive, negative, cessation",
    )
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    streak_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_completions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "name_key", name="uq_habits_user_id_name_key"),
        Index("ix_habits_user_id", "user_id"),
    )
