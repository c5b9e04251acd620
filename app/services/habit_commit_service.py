"""
app/services/habit_commit_service.py

Writes resolved habits and their entries to the store.

Idempotence comes from two layers: existing (habit, date) pairs are loaded
in one read and skipped, and every write that does go out is an upsert on
(habit, user, date). Failures are isolated per record and reported; there
is no all-or-nothing transaction across the commit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date

from app.domain.habit_import import (
    EntityKey,
    ImportIssue,
    IssueKind,
    NormalizedEntry,
    NormalizedHabit,
)
from app.domain.habit_polarity import categorize_habit, classify_habit_type, determine_measurement_type
from app.repositories.habit_store import (
    DuplicateHabitError,
    EntryWrite,
    HabitCreate,
    HabitRecord,
    HabitStore,
    HabitStoreError,
)

logger = logging.getLogger(__name__)

_PROGRESS_LOG_EVERY = 100


@dataclass
class CommitResult:
    imported_habits: int = 0
    skipped_habits: int = 0
    imported_entries: int = 0
    failed_entries: int = 0
    errors: list[ImportIssue] = field(default_factory=list)
    habits: dict[EntityKey, HabitRecord] = field(default_factory=dict)


class HabitCommitService:
    """
    Commits one import's habits and entries for one user.
    """

    def __init__(self, store: HabitStore, *, entry_source: str = "loop_import") -> None:
        self._store = store
        self._entry_source = entry_source

    def commit(
        self,
        *,
        user_id: str,
        habits: Iterable[NormalizedHabit],
        entries: Mapping[EntityKey, Mapping[date, NormalizedEntry]],
        existing: Mapping[EntityKey, HabitRecord] | None = None,
        result: CommitResult | None = None,
    ) -> CommitResult:
        """
        Commit habits, then entries for every habit that has an id.

        ``existing`` may be passed to reuse a lookup the caller already
        built; otherwise it is read from the store. Counters are updated on
        ``result`` as each write lands, so a caller that passes its own
        result still sees partial counts if an unexpected error escapes.
        """

        if result is None:
            result = CommitResult()
        lookup = dict(existing) if existing is not None else self.load_existing(user_id)

        for habit in habits:
            self._commit_habit(user_id=user_id, habit=habit, lookup=lookup, result=result)

        self.commit_entries(user_id=user_id, entries=entries, result=result)

        logger.info(
            "Habit commit finished user=%s imported_habits=%s skipped_habits=%s "
            "imported_entries=%s failed_entries=%s errors=%s",
            user_id,
            result.imported_habits,
            result.skipped_habits,
            result.imported_entries,
            result.failed_entries,
            len(result.errors),
        )
        return result

    def load_existing(self, user_id: str) -> dict[EntityKey, HabitRecord]:
        lookup: dict[EntityKey, HabitRecord] = {}
        for habit in self._store.list_habits(user_id):
            lookup.setdefault(EntityKey.from_name(habit.name), habit)
        return lookup

    def commit_entries(
        self,
        *,
        user_id: str,
        entries: Mapping[EntityKey, Mapping[date, NormalizedEntry]],
        result: CommitResult,
    ) -> None:
        """
        Write entries for habits already present in ``result.habits``.

        Entries for habits without an id (skipped or failed) are ignored.
        """

        if not result.habits:
            return

        habit_ids = {record.id for record in result.habits.values()}
        present = self._store.existing_entry_keys(user_id, habit_ids)

        pending: list[EntryWrite] = []
        for key, by_date in entries.items():
            record = result.habits.get(key)
            if record is None:
                continue
            for entry_date, entry in sorted(by_date.items()):
                if (record.id, entry_date) in present:
                    continue
                pending.append(
                    EntryWrite(
                        habit_id=record.id,
                        user_id=user_id,
                        date=entry_date,
                        value=entry.normalized_value,
                        notes=entry.notes,
                        numeric_value=entry.numeric_value,
                        source=self._entry_source,
                    )
                )

        logger.info("Prepared habit entries user=%s pending=%s already_present=%s", user_id, len(pending), len(present))

        habit_names = {record.id: record.name for record in result.habits.values()}
        for index, write in enumerate(pending, start=1):
            try:
                self._store.upsert_entry(write)
            except HabitStoreError as exc:
                result.failed_entries += 1
                habit_name = habit_names.get(write.habit_id)
                logger.warning(
                    "Habit entry write failed habit=%r date=%s: %s",
                    habit_name,
                    write.date.isoformat(),
                    exc,
                )
                result.errors.append(
                    ImportIssue.error(
                        IssueKind.DATABASE,
                        f"Failed to insert entry for {habit_name} on {write.date.isoformat()}: {exc}",
                        habit_name=habit_name,
                        details={"date": write.date.isoformat(), "value": write.value},
                    )
                )
                continue
            result.imported_entries += 1
            if index % _PROGRESS_LOG_EVERY == 0:
                logger.info("Processed habit entries %s/%s", index, len(pending))

    def _commit_habit(
        self,
        *,
        user_id: str,
        habit: NormalizedHabit,
        lookup: dict[EntityKey, HabitRecord],
        result: CommitResult,
    ) -> None:
        key = habit.key
        existing = lookup.get(key)
        if existing is not None:
            result.habits[key] = existing
            result.skipped_habits += 1
            logger.info("Using existing habit name=%r id=%s", habit.name, existing.id)
            return

        try:
            created = self._store.insert_habit(self._to_create(user_id, habit))
        except DuplicateHabitError:
            self._fall_back_to_existing(user_id=user_id, habit=habit, lookup=lookup, result=result)
            return
        except HabitStoreError as exc:
            logger.warning("Failed to import habit name=%r: %s", habit.name, exc)
            result.errors.append(
                ImportIssue.error(
                    IssueKind.DATABASE,
                    f"Failed to import habit: {habit.name}",
                    habit_name=habit.name,
                    details=str(exc),
                )
            )
            result.skipped_habits += 1
            return

        lookup[key] = created
        result.habits[key] = created
        result.imported_habits += 1
        logger.info("Created habit name=%r id=%s", habit.name, created.id)

    def _fall_back_to_existing(
        self,
        *,
        user_id: str,
        habit: NormalizedHabit,
        lookup: dict[EntityKey, HabitRecord],
        result: CommitResult,
    ) -> None:
        """
        A concurrent import created the habit first; reuse that row.
        """

        result.skipped_habits += 1
        try:
            existing = self._store.find_habit_by_name(user_id, habit.name)
        except HabitStoreError as exc:
            existing = None
            logger.warning("Duplicate habit lookup failed name=%r: %s", habit.name, exc)
        if existing is None:
            result.errors.append(
                ImportIssue.error(
                    IssueKind.DATABASE,
                    f"Habit {habit.name} already exists but could not be loaded",
                    habit_name=habit.name,
                )
            )
            return
        lookup[habit.key] = existing
        result.habits[habit.key] = existing
        logger.info("Duplicate habit detected, reusing name=%r id=%s", habit.name, existing.id)

    @staticmethod
    def _to_create(user_id: str, habit: NormalizedHabit) -> HabitCreate:
        return HabitCreate(
            user_id=user_id,
            name=habit.name,
            description=habit.description or habit.question,
            category=categorize_habit(habit.name),
            habit_type=classify_habit_type(habit.name).value,
            measurement_type=determine_measurement_type(habit.question, habit.repetition_target),
            polarity=habit.polarity,
            color=habit.color,
            position=habit.position,
            target_value=habit.repetition_target,
        )
