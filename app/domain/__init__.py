"""
app/domain package marker.
"""

from app.domain.habit_import import (
    ConflictRecord,
    ConflictResolution,
    EntityKey,
    ImportIssue,
    ImportProgress,
    ImportStage,
    ImportSummary,
    NormalizedEntry,
    NormalizedHabit,
    ParsedImport,
    PerHabitFile,
    Polarity,
    RawFileSet,
    ResolutionStrategy,
)

__all__ = [
    "ConflictRecord",
    "ConflictResolution",
    "EntityKey",
    "ImportIssue",
    "ImportProgress",
    "ImportStage",
    "ImportSummary",
    "NormalizedEntry",
    "NormalizedHabit",
    "ParsedImport",
    "PerHabitFile",
    "Polarity",
    "RawFileSet",
    "ResolutionStrategy",
]
