"""
app/services/per_habit_import_service.py

Imports Loop Habits per-habit exports (``<NNN Habit Name>/Checkmarks.csv``).

Habit names come from folder names, which rarely match what the user
already has character for character, so existing habits are found with
the fuzzy matcher instead of exact keys. The progress contract and the
summary type are the same as the root-export pipeline.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from functools import lru_cache
from pathlib import PurePosixPath

from app.config import HabitImportSettings, get_habit_import_settings
from app.domain.habit_import import (
    ConflictRecord,
    ConflictResolution,
    EntityKey,
    ImportIssue,
    ImportStage,
    ImportSummary,
    IssueKind,
    NormalizedEntry,
    NormalizedHabit,
    ParsedImport,
    PerHabitFile,
)
from app.domain.habit_polarity import classify_polarity
from app.mappers.loop_habits_normalizer import DEFAULT_COLOR, LoopHabitsNormalizer
from app.repositories.habit_store import HabitRecord, HabitStore
from app.services.conflict_detection import (
    FuzzyMatch,
    MatchConfidence,
    build_conflict,
    classify_match,
    fuzzy_match_habit,
)
from app.services.conflict_resolution import apply_conflict_resolutions
from app.services.habit_commit_service import CommitResult, HabitCommitService
from app.services.habit_import_orchestrator import (
    ProgressReporter,
    ProgressSink,
    RunState,
    build_recommendations,
    build_statistics,
    mark_resolutions,
)
from app.services.streak_service import StreakService

logger = logging.getLogger(__name__)

PER_HABIT_SOURCE = "loop_per_habit"
CHECKMARKS_FILENAME = "checkmarks.csv"
_FOLDER_PREFIX_RE = re.compile(r"^\d+\s*")


class ImportFormat(str, Enum):
    ROOT = "root"
    PER_HABIT = "per-habit"


def detect_import_format(file_names: Iterable[str]) -> ImportFormat:
    """
    Guess the export layout from uploaded file names.

    ``Habits.csv`` plus ``Checkmarks.csv`` is a root export; several
    ``Checkmarks.csv`` files without them is per-habit. Anything else is
    treated as root.
    """

    names = [_basename(name).lower() for name in file_names]
    if "habits.csv" in names and CHECKMARKS_FILENAME in names:
        return ImportFormat.ROOT
    if names.count(CHECKMARKS_FILENAME) > 1:
        return ImportFormat.PER_HABIT
    return ImportFormat.ROOT


def extract_habit_name(path: str) -> str | None:
    """
    Habit name for one per-habit file path.

    ``"003 Morning Walk/Checkmarks.csv"`` gives ``"Morning Walk"``. Without
    a folder, a file named anything other than ``Checkmarks.csv`` falls back
    to its stem.
    """

    parts = [part for part in re.split(r"[\\/]", path or "") if part]
    if len(parts) >= 2:
        name = _FOLDER_PREFIX_RE.sub("", parts[-2]).strip()
        return name or None
    if not parts or parts[-1].lower() == CHECKMARKS_FILENAME:
        return None
    name = re.sub(r"\.csv$", "", parts[-1], flags=re.IGNORECASE).strip()
    return name or None


def _basename(path: str) -> str:
    return PurePosixPath((path or "").replace("\\", "/")).name


@dataclass
class _HabitPlan:
    habit: NormalizedHabit
    entries: dict[date, NormalizedEntry] = field(default_factory=dict)
    match: FuzzyMatch | None = None
    confidence: MatchConfidence = MatchConfidence.NEW


class PerHabitImportService:
    def __init__(
        self,
        *,
        settings: HabitImportSettings | None = None,
        normalizer: LoopHabitsNormalizer | None = None,
        streaks: StreakService | None = None,
    ) -> None:
        self._settings = settings or get_habit_import_settings()
        self._normalizer = normalizer or LoopHabitsNormalizer(
            max_issues=self._settings.max_issues,
            log_issues=self._settings.log_issues,
        )
        self._streaks = streaks or StreakService(lookback_days=self._settings.streak_lookback_days)

    def run(
        self,
        files: Sequence[PerHabitFile],
        *,
        store: HabitStore,
        user_id: str,
        conflict_resolutions: Sequence[ConflictResolution] | None = None,
        progress: ProgressSink | None = None,
        as_of: date | None = None,
    ) -> ImportSummary:
        """
        Import a set of per-habit files for ``user_id``.

        Low-confidence name matches suspend the run exactly like root-export
        conflicts; auto matches merge into the existing habit with a warning.
        """

        reporter = ProgressReporter(progress)
        state = RunState()
        committed = CommitResult()
        logger.info("Per-habit import started user=%s files=%s", user_id, len(files))

        try:
            reporter.emit(ImportStage.VALIDATION, "Validating per-habit files")
            named = self._validate(files, state)
            if state.errors:
                reporter.emit(ImportStage.COMPLETE, "Validation failed")
                return state.to_summary(success=False)

            reporter.emit(ImportStage.PARSING, "Parsing per-habit checkmarks")
            existing = store.list_habits(user_id)
            issues: list[ImportIssue] = []
            plans = self._plan(named, existing, issues)
            state.add_issues(issues)
            state.total_habits = len(plans)
            state.total_entries = sum(len(plan.entries) for plan in plans.values())

            reporter.emit(ImportStage.CONFLICT_RESOLUTION, "Matching habits to existing habits")
            conflicts = self._low_confidence_conflicts(plans, store)
            for plan in plans.values():
                if plan.confidence is MatchConfidence.AUTO and plan.match is not None:
                    state.warnings.append(
                        ImportIssue.warning(
                            IssueKind.CONFLICT,
                            f'Matched "{plan.habit.name}" to existing habit "{plan.match.habit.name}" '
                            f"({plan.match.confidence}% confidence)",
                            habit_name=plan.habit.name,
                        )
                    )
            if conflicts and conflict_resolutions is None:
                state.conflicts = conflicts
                logger.info("Per-habit import waiting for conflict resolution user=%s conflicts=%s", user_id, len(conflicts))
                reporter.emit(
                    ImportStage.COMPLETE,
                    "Waiting for conflict resolution",
                    details=f"{len(conflicts)} conflicts",
                )
                return state.to_summary(success=False, requires_resolution=True)

            resolutions = list(conflict_resolutions or [])
            state.conflicts = mark_resolutions(conflicts, resolutions)
            parsed = ParsedImport(
                habits=[plan.habit for plan in plans.values()],
                entries={key: plan.entries for key, plan in plans.items()},
            )
            resolved, resolution_issues = apply_conflict_resolutions(parsed, resolutions)
            state.add_issues(resolution_issues)

            reporter.emit(ImportStage.IMPORTING, "Importing habits and entries")
            committer = HabitCommitService(store, entry_source=PER_HABIT_SOURCE)
            lookup = committer.load_existing(user_id)
            for key, plan in plans.items():
                # Renamed habits change key and fall back to exact matching.
                if plan.match is not None:
                    lookup[key] = plan.match.habit
            committer.commit(
                user_id=user_id,
                habits=resolved.habits,
                entries=resolved.entries,
                existing=lookup,
                result=committed,
            )
            state.absorb(committed)

            reporter.emit(ImportStage.CALCULATING_STREAKS, "Calculating habit streaks")
            state.add_issues(self._streaks.recalculate(store, committed.habits.values(), as_of=as_of))

            reporter.emit(ImportStage.COMPLETE, "Generating summary and recommendations")
            statistics = build_statistics(store, user_id)
            recommendations = build_recommendations(
                imported_habits=state.imported_habits,
                imported_entries=state.imported_entries,
                conflicts=len(state.conflicts),
                warnings=len(state.warnings),
                statistics=statistics,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Per-habit import failed user=%s", user_id)
            if reporter.stage is ImportStage.IMPORTING:
                state.absorb(committed)
            state.errors.append(ImportIssue.error(IssueKind.DATABASE, f"Import failed: {exc}"))
            if not reporter.completed:
                reporter.emit(ImportStage.COMPLETE, "Import failed")
            return state.to_summary(success=False)

        logger.info(
            "Per-habit import finished user=%s habits=%s entries=%s failed=%s",
            user_id,
            state.imported_habits,
            state.imported_entries,
            state.failed_entries,
        )
        return state.to_summary(success=True, statistics=statistics, recommendations=recommendations)

    def _validate(self, files: Sequence[PerHabitFile], state: RunState) -> list[tuple[PerHabitFile, str]]:
        if not files:
            state.errors.append(ImportIssue.error(IssueKind.VALIDATION, "No per-habit Checkmarks.csv files supplied"))
            return []

        named: list[tuple[PerHabitFile, str]] = []
        for habit_file in files:
            size = len(habit_file.content.encode("utf-8"))
            if size > self._settings.max_file_bytes:
                state.errors.append(
                    ImportIssue.error(
                        IssueKind.VALIDATION,
                        f"{habit_file.path} is too large ({size} bytes, max {self._settings.max_file_bytes})",
                    )
                )
                continue
            name = extract_habit_name(habit_file.path)
            if name is None:
                state.errors.append(
                    ImportIssue.error(
                        IssueKind.VALIDATION,
                        f"Could not extract habit name from file: {habit_file.path}",
                    )
                )
                continue
            named.append((habit_file, name))
        return named

    def _plan(
        self,
        named: Sequence[tuple[PerHabitFile, str]],
        existing: Sequence[HabitRecord],
        issues: list[ImportIssue],
    ) -> dict[EntityKey, _HabitPlan]:
        plans: dict[EntityKey, _HabitPlan] = {}
        for position, (habit_file, name) in enumerate(named, start=1):
            key = EntityKey.from_name(name)
            plan = plans.get(key)
            if plan is None:
                match = fuzzy_match_habit(name, existing, min_confidence=self._settings.min_match_confidence)
                polarity = match.habit.polarity if match is not None else classify_polarity(name)
                plan = _HabitPlan(
                    habit=NormalizedHabit(
                        name=name,
                        description="",
                        question="",
                        position=position,
                        repetition_target=1,
                        interval_days=1,
                        color=DEFAULT_COLOR,
                        polarity=polarity,
                    ),
                    match=match,
                    confidence=classify_match(match, auto_match_threshold=self._settings.auto_match_threshold),
                )
                plans[key] = plan

            numeric = plan.match is not None and plan.match.habit.measurement_type == "count"
            plan.entries.update(
                self._normalizer.parse_per_habit_file(
                    habit_file,
                    habit_name=plan.habit.name,
                    polarity=plan.habit.polarity,
                    numeric=numeric,
                    issues=issues,
                )
            )
            logger.info(
                "Per-habit file parsed path=%s habit=%r match=%s entries=%s",
                habit_file.path,
                name,
                plan.confidence.value,
                len(plan.entries),
            )
        return plans

    @staticmethod
    def _low_confidence_conflicts(plans: dict[EntityKey, _HabitPlan], store: HabitStore) -> list[ConflictRecord]:
        conflicts: list[ConflictRecord] = []
        for plan in plans.values():
            if plan.confidence is not MatchConfidence.LOW or plan.match is None:
                continue
            conflicts.append(
                build_conflict(
                    incoming=plan.habit,
                    existing=plan.match.habit,
                    total_entries=store.count_entries(plan.match.habit.id),
                    incoming_entries=len(plan.entries),
                    confidence=plan.match.confidence,
                )
            )
        return conflicts


@lru_cache(maxsize=1)
def get_per_habit_import_service() -> PerHabitImportService:
    return PerHabitImportService(settings=get_habit_import_settings())
