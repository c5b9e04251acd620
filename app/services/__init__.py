"""
app/services package marker.
"""

from app.services.conflict_detection import detect_conflicts, fuzzy_match_habit
from app.services.conflict_resolution import apply_conflict_resolutions
from app.services.habit_commit_service import CommitResult, HabitCommitService
from app.services.habit_import_orchestrator import (
    HabitImportOrchestrator,
    get_habit_import_orchestrator,
)
from app.services.per_habit_import_service import (
    PerHabitImportService,
    detect_import_format,
    extract_habit_name,
    get_per_habit_import_service,
)
from app.services.streak_service import StreakResult, StreakService, calculate_streaks

__all__ = [
    "CommitResult",
    "HabitCommitService",
    "HabitImportOrchestrator",
    "PerHabitImportService",
    "StreakResult",
    "StreakService",
    "apply_conflict_resolutions",
    "calculate_streaks",
    "detect_conflicts",
    "detect_import_format",
    "extract_habit_name",
    "fuzzy_match_habit",
    "get_habit_import_orchestrator",
    "get_per_habit_import_service",
]
