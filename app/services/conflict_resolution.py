"""
app/services/conflict_resolution.py

Applies user conflict decisions to a parsed import.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from app.domain.habit_import import (
    ConflictResolution,
    EntityKey,
    ImportIssue,
    IssueKind,
    NormalizedHabit,
    ParsedImport,
    ResolutionStrategy,
)

logger = logging.getLogger(__name__)


def apply_conflict_resolutions(
    parsed: ParsedImport,
    resolutions: Sequence[ConflictResolution],
) -> tuple[ParsedImport, list[ImportIssue]]:
    """
    Return a resolved copy of ``parsed``; the input is left untouched.

    ``skip`` drops the habit and its entries. ``rename`` renames the habit
    and moves its entries under the new name. ``merge`` and ``replace`` are
    settled at commit time, where both write into the existing habit.
    Resolutions for habits that are not in the import are ignored.
    """

    habits: list[NormalizedHabit] = [replace(habit) for habit in parsed.habits]
    entries = {key: dict(by_date) for key, by_date in parsed.entries.items()}
    scores = {key: dict(by_date) for key, by_date in parsed.scores.items()}
    issues: list[ImportIssue] = []

    for resolution in resolutions:
        index = _find_habit(habits, resolution.key)
        if index is None:
            continue
        habit = habits[index]

        if resolution.resolution is ResolutionStrategy.SKIP:
            del habits[index]
            entries.pop(habit.key, None)
            scores.pop(habit.key, None)
            logger.info("Conflict resolved habit=%r resolution=skip", habit.name)

        elif resolution.resolution is ResolutionStrategy.RENAME:
            new_name = (resolution.new_name or "").strip()
            if not new_name:
                issues.append(
                    ImportIssue.warning(
                        IssueKind.CONFLICT,
                        f"Rename for {habit.name!r} ignored: no new name supplied",
                        habit_name=habit.name,
                    )
                )
                continue
            old_key = habit.key
            habit.name = new_name
            new_key = habit.key
            if new_key != old_key:
                if old_key in entries:
                    entries[new_key] = {
                        entry_date: replace(entry, habit_name=new_name)
                        for entry_date, entry in entries.pop(old_key).items()
                    }
                if old_key in scores:
                    scores[new_key] = scores.pop(old_key)
            logger.info("Conflict resolved habit=%r resolution=rename new_name=%r", resolution.habit_name, new_name)

    return (
        ParsedImport(habits=habits, entries=entries, scores=scores, issues=list(parsed.issues)),
        issues,
    )


def _find_habit(habits: list[NormalizedHabit], key: EntityKey) -> int | None:
    for index, habit in enumerate(habits):
        if habit.key == key:
            return index
    return None
