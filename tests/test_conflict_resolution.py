from __future__ import annotations

from datetime import date

import pytest

from app.domain.habit_import import (
    ConflictResolution,
    EntityKey,
    IssueKind,
    ParsedImport,
    RawFileSet,
    ResolutionStrategy,
)
from app.mappers.loop_habits_normalizer import LoopHabitsNormalizer
from app.services.conflict_resolution import apply_conflict_resolutions

WALK = EntityKey.from_name("Morning Walk")


@pytest.fixture()
def parsed(raw_files: RawFileSet) -> ParsedImport:
    return LoopHabitsNormalizer(log_issues=False).normalize(raw_files)


def test_skip_removes_habit_entries_and_scores(parsed: ParsedImport) -> None:
    resolved, issues = apply_conflict_resolutions(
        parsed,
        [ConflictResolution(habit_name="morning walk", resolution=ResolutionStrategy.SKIP)],
    )

    assert [habit.name for habit in resolved.habits] == ["No Smoking", "Stop Vaping"]
    assert WALK not in resolved.entries
    assert WALK not in resolved.scores
    assert issues == []


def test_rename_rekeys_entries(parsed: ParsedImport) -> None:
    resolved, _ = apply_conflict_resolutions(
        parsed,
        [ConflictResolution(habit_name="Morning Walk", resolution=ResolutionStrategy.RENAME, new_name="Evening Walk")],
    )

    new_key = EntityKey.from_name("Evening Walk")
    assert resolved.habits[0].name == "Evening Walk"
    assert WALK not in resolved.entries
    assert len(resolved.entries[new_key]) == 3
    assert all(entry.habit_name == "Evening Walk" for entry in resolved.entries[new_key].values())
    assert new_key in resolved.scores


def test_rename_without_new_name_is_ignored_with_warning(parsed: ParsedImport) -> None:
    resolved, issues = apply_conflict_resolutions(
        parsed,
        [ConflictResolution(habit_name="Morning Walk", resolution=ResolutionStrategy.RENAME, new_name="  ")],
    )

    assert resolved.habits[0].name == "Morning Walk"
    assert len(issues) == 1
    assert issues[0].kind is IssueKind.CONFLICT
    assert not issues[0].is_error


@pytest.mark.parametrize("strategy", [ResolutionStrategy.MERGE, ResolutionStrategy.REPLACE])
def test_merge_and_replace_leave_import_unchanged(parsed: ParsedImport, strategy: ResolutionStrategy) -> None:
    resolved, issues = apply_conflict_resolutions(
        parsed,
        [ConflictResolution(habit_name="Morning Walk", resolution=strategy)],
    )

    assert [habit.name for habit in resolved.habits] == [habit.name for habit in parsed.habits]
    assert resolved.entries == parsed.entries
    assert issues == []


def test_unknown_habit_is_a_no_op(parsed: ParsedImport) -> None:
    resolved, issues = apply_conflict_resolutions(
        parsed,
        [ConflictResolution(habit_name="Juggling", resolution=ResolutionStrategy.SKIP)],
    )

    assert len(resolved.habits) == 3
    assert issues == []


def test_input_is_not_mutated(parsed: ParsedImport) -> None:
    apply_conflict_resolutions(
        parsed,
        [
            ConflictResolution(habit_name="Morning Walk", resolution=ResolutionStrategy.RENAME, new_name="Stroll"),
            ConflictResolution(habit_name="No Smoking", resolution=ResolutionStrategy.SKIP),
        ],
    )

    assert [habit.name for habit in parsed.habits] == ["Morning Walk", "No Smoking", "Stop Vaping"]
    assert parsed.entries[WALK][date(2024, 1, 5)].habit_name == "Morning Walk"


def test_applying_twice_gives_the_same_result(parsed: ParsedImport) -> None:
    resolutions = [
        ConflictResolution(habit_name="Morning Walk", resolution=ResolutionStrategy.RENAME, new_name="Stroll"),
        ConflictResolution(habit_name="No Smoking", resolution=ResolutionStrategy.SKIP),
    ]

    once, _ = apply_conflict_resolutions(parsed, resolutions)
    twice, _ = apply_conflict_resolutions(once, resolutions)

    assert [habit.name for habit in twice.habits] == [habit.name for habit in once.habits] == ["Stroll", "Stop Vaping"]
    assert twice.entries == once.entries
