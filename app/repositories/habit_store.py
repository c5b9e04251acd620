"""
app/repositories/habit_store.py

Store contract used by the import pipeline.

The pipeline only talks to this protocol, so the SQLAlchemy repository and
the in-memory test double are interchangeable.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from app.domain.habit_import import Polarity


class HabitStoreError(RuntimeError):
    """
    Raised when a store read or write fails.
    """


class DuplicateHabitError(HabitStoreError):
    """
    Raised when a habit insert hits the per-user unique name constraint.
    """


@dataclass(frozen=True)
class HabitRecord:
    id: str
    user_id: str
    name: str
    description: str = ""
    category: str = "General"
    habit_type: str = "build"
    measurement_type: str = "boolean"
    polarity: Polarity = Polarity.POSITIVE
    created_at: datetime | None = None
    streak_count: int = 0
    best_streak: int = 0
    total_completions: int = 0


@dataclass(frozen=True)
class HabitCreate:
    user_id: str
    name: str
    description: str
    category: str
    habit_type: str
    measurement_type: str
    polarity: Polarity
    color: str
    position: int
    target_value: int


@dataclass(frozen=True)
class EntryWrite:
    habit_id: str
    user_id: str
    date: date
    value: int
    notes: str | None = None
    numeric_value: float | None = None
    source: str = "loop_import"


@dataclass(frozen=True)
class StoredEntry:
    date: date
    value: int


class HabitStore(Protocol):
    def list_habits(self, user_id: str) -> list[HabitRecord]:
        ...

    def find_habit_by_name(self, user_id: str, name: str) -> HabitRecord | None:
        ...

    def count_entries(self, habit_id: str) -> int:
        ...

    def insert_habit(self, habit: HabitCreate) -> HabitRecord:
        ...

    def existing_entry_keys(self, user_id: str, habit_ids: Iterable[str]) -> set[tuple[str, date]]:
        ...

    def upsert_entry(self, entry: EntryWrite) -> None:
        ...

    def list_entries(self, habit_id: str) -> list[StoredEntry]:
        """Entries for one habit, newest first."""
        ...

    def update_habit_streaks(
        self,
        habit_id: str,
        *,
        current_streak: int,
        best_streak: int,
        total_completions: int,
    ) -> None:
        ...

    def list_entry_dates(self, user_id: str) -> Sequence[date]:
        ...
