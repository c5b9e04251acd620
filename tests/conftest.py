"""
tests/conftest.py

Shared fixtures for the habit import tests.

InMemoryHabitStore implements the HabitStore protocol with plain dicts so
every pipeline test runs without a database.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable
from datetime import date, datetime, timezone

import pytest

from app.config import HabitImportSettings
from app.domain.habit_import import EntityKey, RawFileSet
from app.repositories.habit_store import (
    DuplicateHabitError,
    EntryWrite,
    HabitCreate,
    HabitRecord,
    HabitStoreError,
    StoredEntry,
)

USER_ID = "user-123"

HABITS_CSV = (
    "Position,Name,Question,Description,NumRepetitions,Interval,Color\n"
    "001,Morning Walk,Did you walk today?,Walk before work,1,1,#FF8A65\n"
    "002,No Smoking,Did you avoid smoking?,,1,1,#4DB6AC\n"
    "003,Stop Vaping,Did you vape today?,,1,1,#9575CD\n"
)

CHECKMARKS_CSV = (
    "Date,Morning Walk,No Smoking,Stop Vaping\n"
    "2024-01-05,2,2,2\n"
    "2024-01-04,2,0,0\n"
    "2024-01-03,0,2,3\n"
)

SCORES_CSV = (
    "Date,Morning Walk,No Smoking,Stop Vaping\n"
    "2024-01-05,0.5,0.25,0.75\n"
    "2024-01-04,0.3,0.25,0.25\n"
)

AS_OF = date(2024, 1, 5)


class InMemoryHabitStore:
    """
    Dict-backed HabitStore.

    ``fail_entry_dates`` makes ``upsert_entry`` raise for those dates, and
    ``fail_streak_updates`` does the same for streak writes.
    """

    def __init__(
        self,
        *,
        fail_entry_dates: Iterable[date] = (),
        fail_streak_updates: bool = False,
    ) -> None:
        self.habits: dict[str, HabitRecord] = {}
        self.entries: dict[tuple[str, str, date], EntryWrite] = {}
        self.created: list[HabitCreate] = []
        self.upsert_calls = 0
        self._ids = itertools.count(1)
        self._fail_entry_dates = set(fail_entry_dates)
        self._fail_streak_updates = fail_streak_updates

    def add_habit(self, user_id: str, name: str, **kwargs: object) -> HabitRecord:
        habit_id = f"habit-{next(self._ids)}"
        record = HabitRecord(
            id=habit_id,
            user_id=user_id,
            name=name,
            created_at=datetime(2023, 12, 1, tzinfo=timezone.utc),
            **kwargs,  # type: ignore[arg-type]
        )
        self.habits[habit_id] = record
        return record

    def add_entry(self, habit_id: str, user_id: str, entry_date: date, value: int) -> None:
        self.entries[(habit_id, user_id, entry_date)] = EntryWrite(
            habit_id=habit_id,
            user_id=user_id,
            date=entry_date,
            value=value,
        )

    def habit_named(self, name: str) -> HabitRecord | None:
        key = EntityKey.from_name(name)
        for habit in self.habits.values():
            if EntityKey.from_name(habit.name) == key:
                return habit
        return None

    # HabitStore protocol

    def list_habits(self, user_id: str) -> list[HabitRecord]:
        return [habit for habit in self.habits.values() if habit.user_id == user_id]

    def find_habit_by_name(self, user_id: str, name: str) -> HabitRecord | None:
        habit = self.habit_named(name)
        if habit is not None and habit.user_id == user_id:
            return habit
        return None

    def count_entries(self, habit_id: str) -> int:
        return sum(1 for key in self.entries if key[0] == habit_id)

    def insert_habit(self, habit: HabitCreate) -> HabitRecord:
        if self.find_habit_by_name(habit.user_id, habit.name) is not None:
            raise DuplicateHabitError(f"Habit {habit.name!r} already exists")
        self.created.append(habit)
        return self.add_habit(
            habit.user_id,
            habit.name,
            description=habit.description,
            category=habit.category,
            habit_type=habit.habit_type,
            measurement_type=habit.measurement_type,
            polarity=habit.polarity,
        )

    def existing_entry_keys(self, user_id: str, habit_ids: Iterable[str]) -> set[tuple[str, date]]:
        wanted = set(habit_ids)
        return {
            (habit_id, entry_date)
            for habit_id, entry_user, entry_date in self.entries
            if entry_user == user_id and habit_id in wanted
        }

    def upsert_entry(self, entry: EntryWrite) -> None:
        self.upsert_calls += 1
        if entry.date in self._fail_entry_dates:
            raise HabitStoreError(f"simulated failure on {entry.date.isoformat()}")
        key = (entry.habit_id, entry.user_id, entry.date)
        current = self.entries.get(key)
        if current is not None and current.value >= entry.value:
            return
        self.entries[key] = entry

    def list_entries(self, habit_id: str) -> list[StoredEntry]:
        stored = [
            StoredEntry(date=entry_date, value=entry.value)
            for (entry_habit, _, entry_date), entry in self.entries.items()
            if entry_habit == habit_id
        ]
        return sorted(stored, key=lambda entry: entry.date, reverse=True)

    def update_habit_streaks(
        self,
        habit_id: str,
        *,
        current_streak: int,
        best_streak: int,
        total_completions: int,
    ) -> None:
        if self._fail_streak_updates:
            raise HabitStoreError("simulated streak failure")
        habit = self.habits[habit_id]
        self.habits[habit_id] = HabitRecord(
            id=habit.id,
            user_id=habit.user_id,
            name=habit.name,
            description=habit.description,
            category=habit.category,
            habit_type=habit.habit_type,
            measurement_type=habit.measurement_type,
            polarity=habit.polarity,
            created_at=habit.created_at,
            streak_count=current_streak,
            best_streak=max(habit.best_streak, best_streak),
            total_completions=total_completions,
        )

    def list_entry_dates(self, user_id: str) -> list[date]:
        return [entry_date for _, entry_user, entry_date in self.entries if entry_user == user_id]


@pytest.fixture()
def store() -> InMemoryHabitStore:
    return InMemoryHabitStore()


@pytest.fixture()
def store_factory():
    """Build a store with failure injection options."""
    return InMemoryHabitStore


@pytest.fixture()
def settings() -> HabitImportSettings:
    return HabitImportSettings(log_issues=False)


@pytest.fixture()
def user_id() -> str:
    return USER_ID


@pytest.fixture()
def as_of() -> date:
    return AS_OF


@pytest.fixture()
def raw_files() -> RawFileSet:
    return RawFileSet(habits=HABITS_CSV, checkmarks=CHECKMARKS_CSV, scores=SCORES_CSV)
