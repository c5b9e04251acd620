"""
app/repositories package marker.
"""

from app.repositories.habit_repository import HabitRepository
from app.repositories.habit_store import (
    DuplicateHabitError,
    EntryWrite,
    HabitCreate,
    HabitRecord,
    HabitStore,
    HabitStoreError,
    StoredEntry,
)

__all__ = [
    "DuplicateHabitError",
    "EntryWrite",
    "HabitCreate",
    "HabitRecord",
    "HabitRepository",
    "HabitStore",
    "HabitStoreError",
    "StoredEntry",
]
