"""
tests/test_loop_habits_normalizer.py

Pytest unit tests for LoopHabitsNormalizer.

Pure Python, no database. Covers root exports (habits, checkmarks, scores)
and per-habit Checkmarks.csv files.
"""

from __future__ import annotations

from datetime import date

import pytest

from app.domain.habit_import import EntityKey, IssueKind, PerHabitFile, Polarity, RawFileSet
from app.mappers.loop_habits_normalizer import (
    DEFAULT_COLOR,
    LoopHabitsNormalizer,
    parse_raw_code,
    sanitize_color,
    sanitize_text,
)


@pytest.fixture()
def normalizer() -> LoopHabitsNormalizer:
    return LoopHabitsNormalizer(log_issues=False)


class TestHelpers:
    def test_sanitize_text_strips_markup_characters(self) -> None:
        assert sanitize_text("  <b>Walk</b> ") == "bWalk/b"
        assert sanitize_text(None) == ""

    def test_sanitize_color(self) -> None:
        assert sanitize_color("#A1B2C3") == "#A1B2C3"
        assert sanitize_color("red") == DEFAULT_COLOR
        assert sanitize_color("") == DEFAULT_COLOR

    @pytest.mark.parametrize(("raw", "expected"), [("2", 2), (" 3 ", 3), ("2.0", 2), ("x", 0), ("", 0), (None, 0)])
    def test_parse_raw_code(self, raw: str | None, expected: int) -> None:
        assert parse_raw_code(raw) == expected


class TestRootExport:
    def test_habits_are_parsed_with_polarity(self, normalizer: LoopHabitsNormalizer, raw_files: RawFileSet) -> None:
        parsed = normalizer.normalize(raw_files)

        names = [habit.name for habit in parsed.habits]
        assert names == ["Morning Walk", "No Smoking", "Stop Vaping"]
        walk, no_smoking, vaping = parsed.habits
        assert walk.polarity is Polarity.POSITIVE
        assert no_smoking.polarity is Polarity.NEGATIVE
        assert vaping.polarity is Polarity.CESSATION
        assert walk.position == 1
        assert walk.description == "Walk before work"
        assert walk.color == "#FF8A65"
        assert parsed.issues == []

    def test_checkmarks_apply_each_habit_code_table(
        self,
        normalizer: LoopHabitsNormalizer,
        raw_files: RawFileSet,
    ) -> None:
        parsed = normalizer.normalize(raw_files)

        walk = parsed.entries[EntityKey.from_name("Morning Walk")]
        no_smoking = parsed.entries[EntityKey.from_name("No Smoking")]
        vaping = parsed.entries[EntityKey.from_name("Stop Vaping")]

        assert [walk[date(2024, 1, d)].normalized_value for d in (3, 4, 5)] == [0, 1, 1]
        assert [no_smoking[date(2024, 1, d)].normalized_value for d in (3, 4, 5)] == [1, 0, 1]
        assert [vaping[date(2024, 1, d)].normalized_value for d in (3, 4, 5)] == [3, 1, 0]
        assert vaping[date(2024, 1, 5)].raw_value == 2
        assert parsed.total_entries == 9

    def test_scores_are_keyed_by_habit(self, normalizer: LoopHabitsNormalizer, raw_files: RawFileSet) -> None:
        parsed = normalizer.normalize(raw_files)

        assert parsed.scores[EntityKey.from_name("morning walk")][date(2024, 1, 5)] == pytest.approx(0.5)
        assert len(parsed.scores) == 3

    def test_nameless_habit_row_is_skipped_with_warning(self, normalizer: LoopHabitsNormalizer) -> None:
        issues = []
        habits = normalizer.parse_habits(
            "Position,Name,Question,Description\n1,,q,d\n2,Read,q,d\n",
            issues=issues,
        )

        assert [habit.name for habit in habits] == ["Read"]
        assert len(issues) == 1
        assert issues[0].kind is IssueKind.PARSING
        assert issues[0].record_index == 2

    def test_missing_optional_columns_get_defaults(self, normalizer: LoopHabitsNormalizer) -> None:
        habits = normalizer.parse_habits("Position,Name,Question,Description\n,Read,,\n", issues=[])

        habit = habits[0]
        assert habit.position == 1
        assert habit.repetition_target == 1
        assert habit.interval_days == 1
        assert habit.color == DEFAULT_COLOR

    def test_unparsable_dates_are_dropped(self, normalizer: LoopHabitsNormalizer) -> None:
        issues = []
        entries = normalizer.parse_checkmarks("Date,Walk\nnope,2\n2024-01-01,2\n", issues=issues)

        assert list(entries[EntityKey.from_name("Walk")]) == [date(2024, 1, 1)]
        assert len(issues) == 1
        assert not issues[0].is_error

    def test_duplicate_dates_last_line_wins(self, normalizer: LoopHabitsNormalizer) -> None:
        entries = normalizer.parse_checkmarks("Date,Walk\n2024-01-01,0\n2024-01-01,2\n", issues=[])

        by_date = entries[EntityKey.from_name("Walk")]
        assert len(by_date) == 1
        assert by_date[date(2024, 1, 1)].normalized_value == 1

    def test_issue_list_is_capped(self) -> None:
        normalizer = LoopHabitsNormalizer(max_issues=2, log_issues=False)
        issues = []
        normalizer.parse_checkmarks("Date,Walk\nx,2\ny,2\nz,2\n", issues=issues)

        assert len(issues) == 2


class TestPerHabitFile:
    def test_parses_value_and_notes(self, normalizer: LoopHabitsNormalizer) -> None:
        habit_file = PerHabitFile(
            path="001 Walk/Checkmarks.csv",
            content="Date,Value,Notes\n2024-01-01,2,felt great\n2024-01-02,0,\n",
        )
        entries = normalizer.parse_per_habit_file(
            habit_file,
            habit_name="Walk",
            polarity=Polarity.POSITIVE,
            issues=[],
        )

        assert entries[date(2024, 1, 1)].normalized_value == 1
        assert entries[date(2024, 1, 1)].notes == "felt great"
        assert entries[date(2024, 1, 2)].notes is None
        assert entries[date(2024, 1, 2)].numeric_value is None

    def test_numeric_habits_keep_scaled_value(self, normalizer: LoopHabitsNormalizer) -> None:
        habit_file = PerHabitFile(path="002 Pages/Checkmarks.csv", content="Date,Value\n2024-01-01,12000\n")
        entries = normalizer.parse_per_habit_file(
            habit_file,
            habit_name="Pages",
            polarity=Polarity.POSITIVE,
            numeric=True,
            issues=[],
        )

        assert entries[date(2024, 1, 1)].numeric_value == pytest.approx(12.0)

    def test_missing_columns_warns(self, normalizer: LoopHabitsNormalizer) -> None:
        issues = []
        entries = normalizer.parse_per_habit_file(
            PerHabitFile(path="003 X/Checkmarks.csv", content="Foo,Bar\n1,2\n"),
            habit_name="X",
            polarity=Polarity.POSITIVE,
            issues=issues,
        )

        assert entries == {}
        assert len(issues) == 1
