"""
app/services/conflict_detection.py

Finds incoming habits whose names collide with habits the user already has.

Root exports use exact matching on the normalized name. Per-habit exports,
whose names come from folder names, use ``fuzzy_match_habit`` instead.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from app.domain.habit_import import (
    ConflictRecord,
    EntityKey,
    ExistingHabitSnapshot,
    IncomingHabitSnapshot,
    NormalizedHabit,
    ParsedImport,
)
from app.repositories.habit_store import HabitRecord, HabitStore

logger = logging.getLogger(__name__)

EXACT_MATCH_CONFIDENCE = 100


class MatchConfidence(str, Enum):
    AUTO = "auto"
    LOW = "low"
    NEW = "new"


@dataclass(frozen=True)
class FuzzyMatch:
    habit: HabitRecord
    confidence: int


def detect_conflicts(
    parsed: ParsedImport,
    *,
    store: HabitStore,
    user_id: str,
) -> list[ConflictRecord]:
    """
    Return one ConflictRecord per incoming habit whose name already exists.
    """

    existing_by_key: dict[EntityKey, HabitRecord] = {}
    for habit in store.list_habits(user_id):
        existing_by_key.setdefault(EntityKey.from_name(habit.name), habit)

    conflicts: list[ConflictRecord] = []
    for incoming in parsed.habits:
        existing = existing_by_key.get(incoming.key)
        if existing is None:
            continue
        conflicts.append(
            build_conflict(
                incoming=incoming,
                existing=existing,
                total_entries=store.count_entries(existing.id),
                incoming_entries=parsed.entry_count(incoming.key),
            )
        )

    logger.info(
        "Conflict detection user=%s incoming=%s conflicts=%s",
        user_id,
        len(parsed.habits),
        len(conflicts),
    )
    return conflicts


def build_conflict(
    *,
    incoming: NormalizedHabit,
    existing: HabitRecord,
    total_entries: int,
    incoming_entries: int,
    confidence: int = EXACT_MATCH_CONFIDENCE,
) -> ConflictRecord:
    return ConflictRecord(
        habit_name=incoming.name,
        existing=ExistingHabitSnapshot(
            id=existing.id,
            name=existing.name,
            description=existing.description,
            created_at=existing.created_at,
            total_entries=total_entries,
        ),
        incoming=IncomingHabitSnapshot(
            name=incoming.name,
            description=incoming.description,
            entry_count=incoming_entries,
        ),
        confidence=confidence,
    )


def fuzzy_match_habit(
    name: str,
    existing: Sequence[HabitRecord],
    *,
    min_confidence: int = 70,
) -> FuzzyMatch | None:
    """
    Best-scoring existing habit for ``name``, or None below ``min_confidence``.
    """

    target = EntityKey.from_name(name).value
    if not target or not existing:
        return None

    best: FuzzyMatch | None = None
    for habit in existing:
        candidate = EntityKey.from_name(habit.name).value
        if candidate == target:
            return FuzzyMatch(habit=habit, confidence=EXACT_MATCH_CONFIDENCE)
        score = round(name_similarity(target, candidate))
        if best is None or score > best.confidence:
            best = FuzzyMatch(habit=habit, confidence=score)

    if best is not None and best.confidence >= min_confidence:
        return best
    return None


def classify_match(match: FuzzyMatch | None, *, auto_match_threshold: int = 90) -> MatchConfidence:
    if match is None:
        return MatchConfidence.NEW
    if match.confidence >= auto_match_threshold:
        return MatchConfidence.AUTO
    return MatchConfidence.LOW


def name_similarity(first: str, second: str) -> float:
    """
    Score two already-normalized names from 0 to 100.
    """

    if first == second:
        return 100.0
    if not first or not second:
        return 0.0

    shorter = min(len(first), len(second))
    longer = max(len(first), len(second))
    ratio = shorter / longer

    if first in second or second in first:
        return 90.0 if ratio >= 0.6 else 85.0

    distance = levenshtein_distance(first, second)
    return (longer - distance) / longer * 100


def levenshtein_distance(first: str, second: str) -> int:
    if len(first) < len(second):
        first, second = second, first
    previous = list(range(len(second) + 1))
    for i, first_char in enumerate(first, start=1):
        current = [i]
        for j, second_char in enumerate(second, start=1):
            cost = 0 if first_char == second_char else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]
