from __future__ import annotations

from datetime import date, timedelta

from app.domain.habit_import import IssueKind, Polarity
from app.repositories.habit_store import StoredEntry
from app.services.streak_service import StreakResult, StreakService, calculate_streaks

START = date(2024, 1, 1)


def _daily(values: list[int], start: date = START) -> list[StoredEntry]:
    return [StoredEntry(date=start + timedelta(days=offset), value=value) for offset, value in enumerate(values)]


def _last_day(values: list[int], start: date = START) -> date:
    return start + timedelta(days=len(values) - 1)


class TestCalculateStreaks:
    def test_break_resets_current_run(self) -> None:
        values = [1, 1, 0, 1, 1]

        result = calculate_streaks(_daily(values), Polarity.POSITIVE, as_of=_last_day(values))

        assert result == StreakResult(current_streak=2, best_streak=2, total_completions=4)

    def test_skip_days_count_toward_current_streak(self) -> None:
        values = [1, 3, 1]

        result = calculate_streaks(_daily(values), Polarity.POSITIVE, as_of=_last_day(values))

        assert result.current_streak == 3
        assert result.best_streak == 3
        assert result.total_completions == 2

    def test_skip_bridges_best_run_without_extending_it(self) -> None:
        values = [1, 3, 1, 0]

        result = calculate_streaks(_daily(values), Polarity.POSITIVE, as_of=_last_day(values))

        assert result.current_streak == 0
        assert result.best_streak == 2
        assert result.total_completions == 2

    def test_unlogged_day_ends_a_started_streak(self) -> None:
        entries = _daily([1, 1]) + _daily([1, 1], start=date(2024, 1, 4))

        result = calculate_streaks(entries, Polarity.POSITIVE, as_of=date(2024, 1, 5))

        assert result.current_streak == 2
        assert result.best_streak == 2

    def test_unlogged_days_before_the_streak_are_passed_over(self) -> None:
        result = calculate_streaks(_daily([1, 1, 1]), Polarity.POSITIVE, as_of=date(2024, 1, 5))

        assert result.current_streak == 3

    def test_lookback_window_limits_current_streak(self) -> None:
        result = calculate_streaks(
            _daily([1, 1, 1]),
            Polarity.POSITIVE,
            as_of=date(2024, 1, 5),
            lookback_days=2,
        )

        assert result.current_streak == 0
        assert result.best_streak == 3

    def test_calendar_gap_resets_best_run(self) -> None:
        entries = _daily([1, 1, 1]) + _daily([1], start=date(2024, 1, 10))

        result = calculate_streaks(entries, Polarity.POSITIVE, as_of=date(2024, 1, 10))

        assert result.best_streak == 3
        assert result.current_streak == 1

    def test_cessation_counts_zero_use_as_success(self) -> None:
        values = [1, 0, 0, 3, 0]

        result = calculate_streaks(_daily(values), Polarity.CESSATION, as_of=_last_day(values))

        assert result.current_streak == 4
        assert result.best_streak == 4
        assert result.total_completions == 3

    def test_negative_polarity_uses_success_value_one(self) -> None:
        values = [0, 1, 1]

        result = calculate_streaks(_daily(values), Polarity.NEGATIVE, as_of=_last_day(values))

        assert result.current_streak == 2

    def test_no_entries(self) -> None:
        assert calculate_streaks([], Polarity.POSITIVE, as_of=START) == StreakResult(0, 0, 0)

    def test_input_order_does_not_matter(self) -> None:
        values = [1, 1, 0, 1, 1]
        entries = list(reversed(_daily(values)))

        result = calculate_streaks(entries, Polarity.POSITIVE, as_of=_last_day(values))

        assert result.current_streak == 2
        assert result.best_streak == 2


class TestStreakService:
    def test_recalculate_persists_streaks(self, store, user_id) -> None:
        habit = store.add_habit(user_id, "Morning Walk")
        for offset, value in enumerate([1, 1, 0, 1, 1]):
            store.add_entry(habit.id, user_id, START + timedelta(days=offset), value)

        issues = StreakService().recalculate(store, [habit], as_of=date(2024, 1, 5))

        assert issues == []
        updated = store.habits[habit.id]
        assert updated.streak_count == 2
        assert updated.best_streak == 2
        assert updated.total_completions == 4

    def test_polarity_comes_from_the_stored_habit(self, store, user_id) -> None:
        habit = store.add_habit(user_id, "Evening Routine", polarity=Polarity.CESSATION)
        store.add_entry(habit.id, user_id, date(2024, 1, 5), 0)

        StreakService().recalculate(store, [habit], as_of=date(2024, 1, 5))

        assert store.habits[habit.id].streak_count == 1

    def test_failures_are_reported_per_habit(self, store_factory, user_id) -> None:
        failing = store_factory(fail_streak_updates=True)
        first = failing.add_habit(user_id, "Walk")
        second = failing.add_habit(user_id, "Read")

        issues = StreakService().recalculate(failing, [first, second, first], as_of=START)

        assert [issue.habit_name for issue in issues] == ["Walk", "Read"]
        assert all(issue.kind is IssueKind.DATABASE for issue in issues)
        assert issues[0].message == "Failed to update streaks for Walk"
