"""
app/services/streak_service.py

Streak recalculation for imported habits.

Runs after every entry write of an import has finished, reading the
polarity stored on the habit rather than re-deriving it from the name.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from app.domain.habit_import import ImportIssue, IssueKind, Polarity
from app.domain.habit_polarity import is_skip, is_success
from app.repositories.habit_store import HabitRecord, HabitStore, HabitStoreError, StoredEntry

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 90
_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StreakResult:
    current_streak: int
    best_streak: int
    total_completions: int


def calculate_streaks(
    entries: Iterable[StoredEntry],
    polarity: Polarity,
    *,
    as_of: date | None = None,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> StreakResult:
    """
    Compute current streak, best streak and completions for one habit.

    The current streak is counted backwards from ``as_of`` (today by
    default) over success and skip days alike; unlogged days before the
    first logged day are passed over, but once a streak has started an
    unlogged day ends it. The best streak counts successes only, with skip
    days bridging a run without extending it. Completions are successes.
    """

    by_date: dict[date, int] = {}
    for entry in entries:
        by_date[entry.date] = entry.value

    total_completions = sum(1 for value in by_date.values() if is_success(value, polarity))

    anchor = as_of or date.today()
    current = 0
    for offset in range(max(lookback_days, 0)):
        value = by_date.get(anchor - timedelta(days=offset))
        if value is None:
            if current:
                break
            continue
        if is_success(value, polarity) or is_skip(value, polarity):
            current += 1
        else:
            break

    best = 0
    run = 0
    previous: date | None = None
    for entry_date in sorted(by_date):
        if previous is not None and entry_date - previous > _ONE_DAY:
            run = 0
        value = by_date[entry_date]
        if is_success(value, polarity):
            run += 1
            best = max(best, run)
        elif not is_skip(value, polarity):
            run = 0
        previous = entry_date

    return StreakResult(
        current_streak=current,
        best_streak=max(best, current),
        total_completions=total_completions,
    )


class StreakService:
    def __init__(self, *, lookback_days: int = DEFAULT_LOOKBACK_DAYS) -> None:
        self._lookback_days = lookback_days

    def recalculate(
        self,
        store: HabitStore,
        habits: Iterable[HabitRecord],
        *,
        as_of: date | None = None,
    ) -> list[ImportIssue]:
        """
        Recompute and persist streak fields for each habit.

        A store failure for one habit is reported and the rest continue.
        """

        issues: list[ImportIssue] = []
        seen: set[str] = set()
        for habit in habits:
            if habit.id in seen:
                continue
            seen.add(habit.id)
            try:
                result = calculate_streaks(
                    store.list_entries(habit.id),
                    habit.polarity,
                    as_of=as_of,
                    lookback_days=self._lookback_days,
                )
                store.update_habit_streaks(
                    habit.id,
                    current_streak=result.current_streak,
                    best_streak=result.best_streak,
                    total_completions=result.total_completions,
                )
            except HabitStoreError as exc:
                logger.warning("Streak update failed habit=%r id=%s: %s", habit.name, habit.id, exc)
                issues.append(
                    ImportIssue.error(
                        IssueKind.DATABASE,
                        f"Failed to update streaks for {habit.name}",
                        habit_name=habit.name,
                        details=str(exc),
                    )
                )
                continue
            logger.info(
                "Streaks updated habit=%r current=%s best=%s completions=%s",
                habit.name,
                result.current_streak,
                result.best_streak,
                result.total_completions,
            )
        return issues
