"""
app/services/habit_import_orchestrator.py

Drives one Loop Habits root-export import from raw CSV text to summary.

Stages run in a fixed order and each one announces itself on the caller's
progress sink before doing its work. When conflicts exist and the caller
supplied no resolutions the run stops after conflict detection; the caller
re-invokes with the same files plus resolutions to continue.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from functools import lru_cache

from app.config import HabitImportSettings, get_habit_import_settings
from app.domain.habit_import import (
    STAGE_PERCENT,
    ConflictRecord,
    ConflictResolution,
    EntityKey,
    ImportIssue,
    ImportProgress,
    ImportStage,
    ImportStatistics,
    ImportSummary,
    IssueKind,
    RawFileSet,
)
from app.mappers.loop_habits_normalizer import LoopHabitsNormalizer
from app.repositories.habit_store import HabitStore
from app.services.conflict_detection import detect_conflicts
from app.services.conflict_resolution import apply_conflict_resolutions
from app.services.habit_commit_service import CommitResult, HabitCommitService
from app.services.streak_service import StreakService
from app.validators.loop_habits_validator import LoopHabitsValidator

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ImportProgress], None]

_GOOD_STREAK_DAYS = 7


class ProgressReporter:
    """
    Forwards stage events to a sink, never letting ``percent`` go backwards.
    """

    def __init__(self, sink: ProgressSink | None) -> None:
        self._sink = sink
        self._last_percent = 0
        self.stage: ImportStage | None = None
        self.events: list[ImportProgress] = []

    def emit(self, stage: ImportStage, message: str, details: str | None = None) -> None:
        percent = max(self._last_percent, STAGE_PERCENT[stage])
        self._last_percent = percent
        self.stage = stage
        event = ImportProgress(stage=stage, percent=percent, message=message, details=details)
        self.events.append(event)
        logger.info("Import stage=%s percent=%s message=%s", stage.value, percent, message)
        if self._sink is not None:
            self._sink(event)

    @property
    def completed(self) -> bool:
        return self.stage is ImportStage.COMPLETE


@dataclass
class RunState:
    """
    Counters accumulated while a run progresses; frozen into an ImportSummary at the end.
    """

    started: float = field(default_factory=time.perf_counter)
    total_habits: int = 0
    imported_habits: int = 0
    skipped_habits: int = 0
    total_entries: int = 0
    imported_entries: int = 0
    failed_entries: int = 0
    conflicts: list[ConflictRecord] = field(default_factory=list)
    errors: list[ImportIssue] = field(default_factory=list)
    warnings: list[ImportIssue] = field(default_factory=list)

    def add_issues(self, issues: Iterable[ImportIssue]) -> None:
        for issue in issues:
            if issue.is_error:
                self.errors.append(issue)
            else:
                self.warnings.append(issue)

    def absorb(self, committed: CommitResult) -> None:
        self.imported_habits = committed.imported_habits
        self.skipped_habits = committed.skipped_habits
        self.imported_entries = committed.imported_entries
        self.failed_entries = committed.failed_entries
        self.add_issues(committed.errors)

    def to_summary(
        self,
        *,
        success: bool,
        statistics: ImportStatistics | None = None,
        recommendations: Sequence[str] = (),
        requires_resolution: bool = False,
    ) -> ImportSummary:
        return ImportSummary(
            success=success,
            total_habits=self.total_habits,
            imported_habits=self.imported_habits,
            skipped_habits=self.skipped_habits,
            total_entries=self.total_entries,
            imported_entries=self.imported_entries,
            failed_entries=self.failed_entries,
            conflicts=list(self.conflicts),
            errors=list(self.errors),
            warnings=list(self.warnings),
            recommendations=list(recommendations),
            processing_time_ms=int((time.perf_counter() - self.started) * 1000),
            statistics=statistics or ImportStatistics(),
            requires_resolution=requires_resolution,
        )


def mark_resolutions(
    conflicts: Sequence[ConflictRecord],
    resolutions: Sequence[ConflictResolution],
) -> list[ConflictRecord]:
    """
    Copy each conflict with the strategy the user picked for it (merge when unspecified).
    """

    by_key = {resolution.key: resolution for resolution in resolutions}
    marked: list[ConflictRecord] = []
    for conflict in conflicts:
        resolution = by_key.get(EntityKey.from_name(conflict.habit_name))
        if resolution is None:
            marked.append(conflict)
            continue
        marked.append(replace(conflict, resolution=resolution.resolution, new_name=resolution.new_name))
    return marked


def build_statistics(
    store: HabitStore,
    user_id: str,
    *,
    scores: Mapping[EntityKey, Mapping[date, float]] | None = None,
    habit_names: Mapping[EntityKey, str] | None = None,
) -> ImportStatistics:
    """
    Summarize the user's habits as they stand after the import.
    """

    habits = store.list_habits(user_id)
    habits_by_category = Counter(habit.category for habit in habits)

    most_active_habit = ""
    max_completions = 0
    for habit in habits:
        if habit.total_completions > max_completions:
            max_completions = habit.total_completions
            most_active_habit = habit.name

    average_streak = sum(habit.streak_count for habit in habits) / len(habits) if habits else 0.0

    entries_by_month = Counter(entry_date.strftime("%Y-%m") for entry_date in store.list_entry_dates(user_id))

    average_score_by_habit: dict[str, float] = {}
    for key, by_date in (scores or {}).items():
        if not by_date:
            continue
        name = (habit_names or {}).get(key, str(key))
        average_score_by_habit[name] = round(sum(by_date.values()) / len(by_date), 4)

    return ImportStatistics(
        habits_by_category=dict(habits_by_category),
        entries_by_month=dict(sorted(entries_by_month.items())),
        average_streak_length=average_streak,
        most_active_habit=most_active_habit,
        average_score_by_habit=average_score_by_habit,
    )


def build_recommendations(
    *,
    imported_habits: int,
    imported_entries: int,
    conflicts: int,
    warnings: int,
    statistics: ImportStatistics,
) -> list[str]:
    recommendations: list[str] = []
    if imported_habits > 0:
        recommendations.append(f"Successfully imported {imported_habits} habits with {imported_entries} entries")
    if conflicts > 0:
        recommendations.append(f"Resolved {conflicts} naming conflicts - review merged habits")
    if warnings > 0:
        recommendations.append(f"{warnings} warnings encountered - check data quality")
    if statistics.average_streak_length > _GOOD_STREAK_DAYS:
        recommendations.append(
            f"Great streak performance! Average streak: {round(statistics.average_streak_length)} days"
        )
    if statistics.most_active_habit:
        recommendations.append(f"Most consistent habit: {statistics.most_active_habit}")
    recommendations.append("Visit the Analytics dashboard to explore your habit patterns")
    recommendations.append("Consider setting up habit reminders for better consistency")
    return recommendations


class HabitImportOrchestrator:
    """
    Runs the root-export pipeline against a caller-provided store.
    """

    def __init__(
        self,
        *,
        settings: HabitImportSettings | None = None,
        validator: LoopHabitsValidator | None = None,
        normalizer: LoopHabitsNormalizer | None = None,
        streaks: StreakService | None = None,
    ) -> None:
        self._settings = settings or get_habit_import_settings()
        self._validator = validator or LoopHabitsValidator(
            max_file_bytes=self._settings.max_file_bytes,
            date_sample_rows=self._settings.date_sample_rows,
        )
        self._normalizer = normalizer or LoopHabitsNormalizer(
            max_issues=self._settings.max_issues,
            log_issues=self._settings.log_issues,
        )
        self._streaks = streaks or StreakService(lookback_days=self._settings.streak_lookback_days)

    def run(
        self,
        files: RawFileSet,
        *,
        store: HabitStore,
        user_id: str,
        conflict_resolutions: Sequence[ConflictResolution] | None = None,
        progress: ProgressSink | None = None,
        as_of: date | None = None,
    ) -> ImportSummary:
        """
        Import one root export for ``user_id``.

        ``conflict_resolutions=None`` means the caller has not been asked yet:
        any conflict suspends the run. An empty list accepts the default
        (merge) for every conflict.
        """

        reporter = ProgressReporter(progress)
        state = RunState()
        committed = CommitResult()
        logger.info("Loop import started user=%s", user_id)

        try:
            reporter.emit(ImportStage.VALIDATION, "Validating CSV files")
            validation = self._validator.validate(files)
            state.add_issues(validation.errors)
            state.add_issues(validation.warnings)
            if not validation.is_valid:
                logger.warning("Loop import validation failed user=%s errors=%s", user_id, len(validation.errors))
                reporter.emit(ImportStage.COMPLETE, "Validation failed")
                return state.to_summary(success=False)

            reporter.emit(ImportStage.PARSING, "Parsing CSV data")
            parsed = self._normalizer.normalize(files)
            state.add_issues(parsed.issues)
            state.total_habits = len(parsed.habits)
            state.total_entries = parsed.total_entries

            reporter.emit(ImportStage.CONFLICT_RESOLUTION, "Detecting conflicts with existing habits")
            conflicts = detect_conflicts(parsed, store=store, user_id=user_id)
            if conflicts and conflict_resolutions is None:
                state.conflicts = conflicts
                logger.info("Loop import waiting for conflict resolution user=%s conflicts=%s", user_id, len(conflicts))
                reporter.emit(
                    ImportStage.COMPLETE,
                    "Waiting for conflict resolution",
                    details=f"{len(conflicts)} conflicts",
                )
                return state.to_summary(success=False, requires_resolution=True)

            resolutions = list(conflict_resolutions or [])
            state.conflicts = mark_resolutions(conflicts, resolutions)
            resolved, resolution_issues = apply_conflict_resolutions(parsed, resolutions)
            state.add_issues(resolution_issues)

            reporter.emit(ImportStage.IMPORTING, "Importing habits and entries")
            HabitCommitService(store).commit(
                user_id=user_id,
                habits=resolved.habits,
                entries=resolved.entries,
                result=committed,
            )
            state.absorb(committed)

            reporter.emit(ImportStage.CALCULATING_STREAKS, "Calculating habit streaks")
            state.add_issues(self._streaks.recalculate(store, committed.habits.values(), as_of=as_of))

            reporter.emit(ImportStage.COMPLETE, "Generating summary and recommendations")
            statistics = build_statistics(
                store,
                user_id,
                scores=resolved.scores,
                habit_names={habit.key: habit.name for habit in resolved.habits},
            )
            recommendations = build_recommendations(
                imported_habits=state.imported_habits,
                imported_entries=state.imported_entries,
                conflicts=len(state.conflicts),
                warnings=len(state.warnings),
                statistics=statistics,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Loop import failed user=%s", user_id)
            if reporter.stage is ImportStage.IMPORTING:
                state.absorb(committed)
            state.errors.append(ImportIssue.error(IssueKind.DATABASE, f"Import failed: {exc}"))
            if not reporter.completed:
                reporter.emit(ImportStage.COMPLETE, "Import failed")
            return state.to_summary(success=False)

        summary = state.to_summary(success=True, statistics=statistics, recommendations=recommendations)
        logger.info(
            "Loop import finished user=%s habits=%s/%s entries=%s/%s failed=%s duration_ms=%s",
            user_id,
            summary.imported_habits,
            summary.total_habits,
            summary.imported_entries,
            summary.total_entries,
            summary.failed_entries,
            summary.processing_time_ms,
        )
        return summary


@lru_cache(maxsize=1)
def get_habit_import_orchestrator() -> HabitImportOrchestrator:
    return HabitImportOrchestrator(settings=get_habit_import_settings())
