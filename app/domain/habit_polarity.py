"""
app/domain/habit_polarity.py

Keyword rules that classify imported habits and translate Loop Habits
checkmark codes.

The code table here is shared by the normalizer and the streak
recalculator; both must call into this module rather than duplicate it.
"""

from __future__ import annotations

from app.domain.habit_import import EntityKey, HabitType, NormalizedValue, Polarity

# Loop Habits checkmark codes.
LOOP_NO = 0
LOOP_YES = 2
LOOP_SKIP = 3

_CESSATION_KEYWORDS: tuple[str, ...] = ("vap",)
_NEGATIVE_KEYWORDS: tuple[str, ...] = ("no ", "quit")
_BREAK_KEYWORDS: tuple[str, ...] = ("quit", "no ", "stop")

_CODE_TABLES: dict[Polarity, dict[int, int]] = {
    Polarity.POSITIVE: {
        LOOP_NO: NormalizedValue.FAIL,
        LOOP_YES: NormalizedValue.SUCCESS,
        LOOP_SKIP: NormalizedValue.EXPLICIT_SKIP,
    },
    Polarity.NEGATIVE: {
        LOOP_NO: NormalizedValue.FAIL,
        LOOP_YES: NormalizedValue.SUCCESS,
        LOOP_SKIP: NormalizedValue.EXPLICIT_SKIP,
    },
    # A "yes" on a cessation habit means zero use, stored as 0.
    Polarity.CESSATION: {
        LOOP_YES: 0,
        LOOP_NO: 1,
        LOOP_SKIP: NormalizedValue.EXPLICIT_SKIP,
    },
}

# Fallback for codes outside the table (e.g. Loop's -1 "unknown").
_UNKNOWN_CODE_DEFAULT: dict[Polarity, int] = {
    Polarity.POSITIVE: NormalizedValue.FAIL,
    Polarity.NEGATIVE: NormalizedValue.FAIL,
    Polarity.CESSATION: 0,
}

_SUCCESS_VALUE: dict[Polarity, int] = {
    Polarity.POSITIVE: NormalizedValue.SUCCESS,
    Polarity.NEGATIVE: NormalizedValue.SUCCESS,
    Polarity.CESSATION: 0,
}

_SKIP_VALUES = frozenset({NormalizedValue.SKIP, NormalizedValue.EXPLICIT_SKIP})

# Ordered: first matching category wins.
_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Fitness", ("gym", "walk", "exercise")),
    ("Health", ("vap", "smoke", "drink", "pot")),
    ("Productivity", ("code", "build", "university")),
    ("Self Care", ("shower", "wake")),
    ("Entertainment", ("valorant", "game")),
)
DEFAULT_CATEGORY = "General"


def _lowered(name: str | None) -> str:
    return EntityKey.from_name(name).value


def classify_polarity(name: str | None) -> Polarity:
    lowered = _lowered(name)
    if any(keyword in lowered for keyword in _CESSATION_KEYWORDS):
        return Polarity.CESSATION
    if any(keyword in lowered for keyword in _NEGATIVE_KEYWORDS):
        return Polarity.NEGATIVE
    return Polarity.POSITIVE


def normalize_checkmark(raw_value: int, polarity: Polarity) -> int:
    """
    Map one raw Loop code to the stored 0-3 value for ``polarity``.
    """

    return _CODE_TABLES[polarity].get(raw_value, _UNKNOWN_CODE_DEFAULT[polarity])


def is_success(value: int, polarity: Polarity) -> bool:
    return value == _SUCCESS_VALUE[polarity]


def is_skip(value: int, polarity: Polarity) -> bool:
    if is_success(value, polarity):
        return False
    return value in _SKIP_VALUES


def classify_habit_type(name: str | None) -> HabitType:
    lowered = _lowered(name)
    if any(keyword in lowered for keyword in _BREAK_KEYWORDS):
        return HabitType.BREAK
    return HabitType.BUILD


def categorize_habit(name: str | None) -> str:
    lowered = _lowered(name)
    if not lowered:
        return DEFAULT_CATEGORY
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def determine_measurement_type(question: str | None, repetition_target: int) -> str:
    lowered_question = (question or "").lower()
    if "did you" in lowered_question:
        return "boolean"
    if "how many" in lowered_question:
        return "count"
    if repetition_target == 1:
        return "boolean"
    return "count"
