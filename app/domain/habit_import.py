"""
app/domain/habit_import.py

Domain models used by the Loop Habits import pipeline.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Any

_WHITESPACE_RE = re.compile(r"\s+")


class ImportStage(str, Enum):
    VALIDATION = "validation"
    PARSING = "parsing"
    CONFLICT_RESOLUTION = "conflict_resolution"
    IMPORTING = "importing"
    CALCULATING_STREAKS = "calculating_streaks"
    COMPLETE = "complete"


STAGE_PERCENT: dict[ImportStage, int] = {
    ImportStage.VALIDATION: 10,
    ImportStage.PARSING: 25,
    ImportStage.CONFLICT_RESOLUTION: 40,
    ImportStage.IMPORTING: 60,
    ImportStage.CALCULATING_STREAKS: 85,
    ImportStage.COMPLETE: 100,
}


class IssueKind(str, Enum):
    VALIDATION = "validation"
    PARSING = "parsing"
    DATABASE = "database"
    CONFLICT = "conflict"


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Polarity(str, Enum):
    """
    How a habit's raw Loop codes translate into success.

    ``negative`` and ``cessation`` are both "quitting" habits but use
    different code tables, so they are kept as separate classes.
    """

    POSITIVE = "positive"
    NEGATIVE = "negative"
    CESSATION = "cessation"


class HabitType(str, Enum):
    BUILD = "build"
    BREAK = "break"


class NormalizedValue(IntEnum):
    FAIL = 0
    SUCCESS = 1
    SKIP = 2
    EXPLICIT_SKIP = 3


class ResolutionStrategy(str, Enum):
    MERGE = "merge"
    REPLACE = "replace"
    SKIP = "skip"
    RENAME = "rename"


@dataclass(frozen=True, order=True)
class EntityKey:
    """
    Normalized habit identity used for every name-based join.
    """

    value: str

    @classmethod
    def from_name(cls, name: str | None) -> EntityKey:
        text = unicodedata.normalize("NFKC", name or "")
        text = _WHITESPACE_RE.sub(" ", text).strip()
        return cls(text.casefold())

    def __bool__(self) -> bool:
        return bool(self.value)

    def __str__(self) -> str:
        return self.value


@dataclass
class NormalizedHabit:
    """
    One habit parsed from an export.

    Mutable only so the conflict resolver can rename a copy.
    """

    name: str
    description: str
    question: str
    position: int
    repetition_target: int
    interval_days: int
    color: str
    polarity: Polarity

    @property
    def key(self) -> EntityKey:
        return EntityKey.from_name(self.name)


@dataclass(frozen=True)
class NormalizedEntry:
    habit_name: str
    date: date
    raw_value: int
    normalized_value: int
    notes: str | None = None
    numeric_value: float | None = None


@dataclass(frozen=True)
class ImportIssue:
    """
    One error or warning produced anywhere in the pipeline.
    """

    kind: IssueKind
    severity: IssueSeverity
    message: str
    record_index: int | None = None
    habit_name: str | None = None
    details: Any = None

    @property
    def is_error(self) -> bool:
        return self.severity is IssueSeverity.ERROR

    @classmethod
    def error(cls, kind: IssueKind, message: str, **kwargs: Any) -> ImportIssue:
        return cls(kind=kind, severity=IssueSeverity.ERROR, message=message, **kwargs)

    @classmethod
    def warning(cls, kind: IssueKind, message: str, **kwargs: Any) -> ImportIssue:
        return cls(kind=kind, severity=IssueSeverity.WARNING, message=message, **kwargs)


@dataclass(frozen=True)
class RawFileSet:
    """
    Text of one root export. ``scores`` may be empty.
    """

    habits: str
    checkmarks: str
    scores: str = ""


@dataclass(frozen=True)
class PerHabitFile:
    """
    One per-habit ``Checkmarks.csv`` with its relative path inside the export.
    """

    path: str
    content: str


@dataclass
class ParsedImport:
    habits: list[NormalizedHabit] = field(default_factory=list)
    entries: dict[EntityKey, dict[date, NormalizedEntry]] = field(default_factory=dict)
    scores: dict[EntityKey, dict[date, float]] = field(default_factory=dict)
    issues: list[ImportIssue] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return sum(len(by_date) for by_date in self.entries.values())

    def entry_count(self, key: EntityKey) -> int:
        return len(self.entries.get(key, {}))


@dataclass(frozen=True)
class ExistingHabitSnapshot:
    id: str
    name: str
    description: str
    created_at: datetime | None
    total_entries: int


@dataclass(frozen=True)
class IncomingHabitSnapshot:
    name: str
    description: str
    entry_count: int


@dataclass(frozen=True)
class ConflictRecord:
    habit_name: str
    existing: ExistingHabitSnapshot
    incoming: IncomingHabitSnapshot
    resolution: ResolutionStrategy = ResolutionStrategy.MERGE
    new_name: str | None = None
    confidence: int = 100


@dataclass(frozen=True)
class ConflictResolution:
    """
    A user's decision for one conflict, referenced by habit name.
    """

    habit_name: str
    resolution: ResolutionStrategy
    new_name: str | None = None

    @property
    def key(self) -> EntityKey:
        return EntityKey.from_name(self.habit_name)


@dataclass(frozen=True)
class ImportProgress:
    stage: ImportStage
    percent: int
    message: str
    details: str | None = None


@dataclass(frozen=True)
class ImportStatistics:
    habits_by_category: dict[str, int] = field(default_factory=dict)
    entries_by_month: dict[str, int] = field(default_factory=dict)
    average_streak_length: float = 0.0
    most_active_habit: str = ""
    average_score_by_habit: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ImportSummary:
    """
    End-of-run import summary.
    """

    success: bool
    total_habits: int
    imported_habits: int
    skipped_habits: int
    total_entries: int
    imported_entries: int
    failed_entries: int
    conflicts: list[ConflictRecord] = field(default_factory=list)
    errors: list[ImportIssue] = field(default_factory=list)
    warnings: list[ImportIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    processing_time_ms: int = 0
    statistics: ImportStatistics = field(default_factory=ImportStatistics)
    requires_resolution: bool = False
