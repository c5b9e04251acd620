"""
tests/test_habit_polarity.py

Pytest unit tests for the polarity rules and habit taxonomy.
"""

from __future__ import annotations

import pytest

from app.domain.habit_import import EntityKey, HabitType, NormalizedValue, Polarity
from app.domain.habit_polarity import (
    LOOP_NO,
    LOOP_SKIP,
    LOOP_YES,
    categorize_habit,
    classify_habit_type,
    classify_polarity,
    determine_measurement_type,
    is_skip,
    is_success,
    normalize_checkmark,
)


class TestEntityKey:
    def test_case_and_whitespace_are_normalized(self) -> None:
        assert EntityKey.from_name("  Morning   WALK ") == EntityKey.from_name("morning walk")

    def test_nfkc_folds_compatibility_characters(self) -> None:
        # Full-width letters fold to ASCII.
        assert EntityKey.from_name("Ｇｙｍ") == EntityKey.from_name("gym")

    def test_empty_name_is_falsy(self) -> None:
        assert not EntityKey.from_name("   ")
        assert not EntityKey.from_name(None)


class TestClassifyPolarity:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Exercise", Polarity.POSITIVE),
            ("No Smoking", Polarity.NEGATIVE),
            ("Quit sugar", Polarity.NEGATIVE),
            ("Stop Vaping", Polarity.CESSATION),
            ("vape free", Polarity.CESSATION),
            ("Nothing", Polarity.POSITIVE),
        ],
    )
    def test_keyword_rules(self, name: str, expected: Polarity) -> None:
        assert classify_polarity(name) is expected


class TestNormalizeCheckmark:
    def test_shared_yes_no_table_for_build_and_break_habits(self) -> None:
        no_smoking = classify_polarity("No Smoking")
        exercise = classify_polarity("Exercise")

        assert is_success(normalize_checkmark(LOOP_YES, no_smoking), no_smoking)
        assert is_success(normalize_checkmark(LOOP_YES, exercise), exercise)
        assert normalize_checkmark(LOOP_NO, no_smoking) == NormalizedValue.FAIL
        assert normalize_checkmark(LOOP_NO, exercise) == NormalizedValue.FAIL
        assert not is_success(normalize_checkmark(LOOP_NO, no_smoking), no_smoking)
        assert not is_success(normalize_checkmark(LOOP_NO, exercise), exercise)

    def test_cessation_inverts_yes_and_no(self) -> None:
        assert normalize_checkmark(LOOP_YES, Polarity.CESSATION) == 0
        assert normalize_checkmark(LOOP_NO, Polarity.CESSATION) == 1
        assert is_success(0, Polarity.CESSATION)
        assert not is_success(1, Polarity.CESSATION)

    @pytest.mark.parametrize("polarity", list(Polarity))
    def test_skip_code_is_explicit_skip_for_every_polarity(self, polarity: Polarity) -> None:
        value = normalize_checkmark(LOOP_SKIP, polarity)
        assert value == NormalizedValue.EXPLICIT_SKIP
        assert is_skip(value, polarity)

    def test_unknown_codes_fall_back_to_zero(self) -> None:
        assert normalize_checkmark(-1, Polarity.POSITIVE) == 0
        assert normalize_checkmark(7, Polarity.CESSATION) == 0


class TestTaxonomy:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Gym session", "Fitness"),
            ("Stop Vaping", "Health"),
            ("Code for an hour", "Productivity"),
            ("Cold shower", "Self Care"),
            ("Valorant", "Entertainment"),
            ("Read", "General"),
            ("", "General"),
        ],
    )
    def test_categorize_habit(self, name: str, expected: str) -> None:
        assert categorize_habit(name) == expected

    def test_break_keywords(self) -> None:
        assert classify_habit_type("Quit sugar") is HabitType.BREAK
        assert classify_habit_type("No phone in bed") is HabitType.BREAK
        assert classify_habit_type("Stop snacking") is HabitType.BREAK
        assert classify_habit_type("Meditate") is HabitType.BUILD

    def test_measurement_type(self) -> None:
        assert determine_measurement_type("Did you run?", 5) == "boolean"
        assert determine_measurement_type("How many pages?", 1) == "count"
        assert determine_measurement_type("", 1) == "boolean"
        assert determine_measurement_type(None, 10) == "count"
