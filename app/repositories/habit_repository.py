"""
app/repositories/habit_repository.py

PostgreSQL persistence for habits and habit entries.

Every write commits on its own so that one failed record never rolls back
records written before it.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import date

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.habit_import import EntityKey, Polarity
from app.repositories.habit_store import (
    DuplicateHabitError,
    EntryWrite,
    HabitCreate,
    HabitRecord,
    HabitStoreError,
    StoredEntry,
)
from db.models.habit import Habit
from db.models.habit_entry import ENTRY_NATURAL_KEY, HabitEntry

_ENTRY_KEY_BATCH_SIZE = 500


class HabitRepository:
    """
    SQLAlchemy implementation of the HabitStore protocol.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def list_habits(self, user_id: str) -> list[HabitRecord]:
        stmt = select(Habit).where(Habit.user_id == user_id).order_by(Habit.position, Habit.created_at)
        try:
            return [self._to_record(habit) for habit in self._session.scalars(stmt).all()]
        except SQLAlchemyError as exc:
            raise HabitStoreError(f"Failed to fetch habits for user {user_id}") from exc

    def find_habit_by_name(self, user_id: str, name: str) -> HabitRecord | None:
        stmt = select(Habit).where(
            Habit.user_id == user_id,
            Habit.name_key == EntityKey.from_name(name).value,
        )
        try:
            habit = self._session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            raise HabitStoreError(f"Failed to look up habit {name!r}") from exc
        return self._to_record(habit) if habit is not None else None

    def count_entries(self, habit_id: str) -> int:
        stmt = select(func.count()).select_from(HabitEntry).where(HabitEntry.habit_id == uuid.UUID(habit_id))
        try:
            return int(self._session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise HabitStoreError(f"Failed to count entries for habit {habit_id}") from exc

    def insert_habit(self, habit: HabitCreate) -> HabitRecord:
        model = Habit(
            user_id=habit.user_id,
            name=habit.name,
            name_key=EntityKey.from_name(habit.name).value,
            description=habit.description,
            category=habit.category,
            type=habit.habit_type,
            measurement_type=habit.measurement_type,
            polarity=habit.polarity.value,
            color=habit.color,
            position=habit.position,
            target_value=habit.target_value,
        )
        try:
            self._session.add(model)
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            raise DuplicateHabitError(f"Habit {habit.name!r} already exists") from exc
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise HabitStoreError(f"Failed to create habit {habit.name!r}") from exc
        return self._to_record(model)

    def existing_entry_keys(self, user_id: str, habit_ids: Iterable[str]) -> set[tuple[str, date]]:
        ids = [uuid.UUID(habit_id) for habit_id in habit_ids]
        keys: set[tuple[str, date]] = set()
        try:
            for start in range(0, len(ids), _ENTRY_KEY_BATCH_SIZE):
                chunk = ids[start : start + _ENTRY_KEY_BATCH_SIZE]
                stmt = select(HabitEntry.habit_id, HabitEntry.date).where(
                    HabitEntry.user_id == user_id,
                    HabitEntry.habit_id.in_(chunk),
                )
                for habit_id, entry_date in self._session.execute(stmt):
                    keys.add((str(habit_id), entry_date))
        except SQLAlchemyError as exc:
            raise HabitStoreError("Failed to load existing habit entries") from exc
        return keys

    def upsert_entry(self, entry: EntryWrite) -> None:
        """
        Insert the entry or, on (habit, user, date) conflict, keep the larger value.
        """

        stmt = insert(HabitEntry).values(
            habit_id=uuid.UUID(entry.habit_id),
            user_id=entry.user_id,
            date=entry.date,
            value=entry.value,
            numeric_value=entry.numeric_value,
            notes=entry.notes,
            source=entry.source,
        )
        stmt = stmt.on_conflict_do_update(
            constraint=ENTRY_NATURAL_KEY,
            set_={
                "value": func.greatest(HabitEntry.value, stmt.excluded.value),
                "numeric_value": func.coalesce(stmt.excluded.numeric_value, HabitEntry.numeric_value),
                "notes": func.coalesce(stmt.excluded.notes, HabitEntry.notes),
                "logged_at": func.now(),
            },
        )
        try:
            self._session.execute(stmt)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise HabitStoreError(f"Failed to upsert entry for {entry.date.isoformat()}: {exc}") from exc

    def list_entries(self, habit_id: str) -> list[StoredEntry]:
        stmt = (
            select(HabitEntry.date, HabitEntry.value)
            .where(HabitEntry.habit_id == uuid.UUID(habit_id))
            .order_by(HabitEntry.date.desc())
        )
        try:
            return [StoredEntry(date=entry_date, value=value) for entry_date, value in self._session.execute(stmt)]
        except SQLAlchemyError as exc:
            raise HabitStoreError(f"Failed to load entries for habit {habit_id}") from exc

    def update_habit_streaks(
        self,
        habit_id: str,
        *,
        current_streak: int,
        best_streak: int,
        total_completions: int,
    ) -> None:
        stmt = (
            update(Habit)
            .where(Habit.id == uuid.UUID(habit_id))
            .values(
                streak_count=current_streak,
                best_streak=func.greatest(Habit.best_streak, best_streak),
                total_completions=total_completions,
            )
        )
        try:
            self._session.execute(stmt)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise HabitStoreError(f"Failed to update streaks for habit {habit_id}") from exc

    def list_entry_dates(self, user_id: str) -> list[date]:
        stmt = select(HabitEntry.date).where(HabitEntry.user_id == user_id)
        try:
            return list(self._session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise HabitStoreError(f"Failed to load entry dates for user {user_id}") from exc

    @staticmethod
    def _to_record(habit: Habit) -> HabitRecord:
        return HabitRecord(
            id=str(habit.id),
            user_id=habit.user_id,
            name=habit.name,
            description=habit.description or "",
            category=habit.category,
            habit_type=habit.type,
            measurement_type=habit.measurement_type,
            polarity=Polarity(habit.polarity),
            created_at=habit.created_at,
            streak_count=habit.streak_count or 0,
            best_streak=habit.best_streak or 0,
            total_completions=habit.total_completions or 0,
        )
