"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.habit import Habit
from db.models.habit_entry import HabitEntry

__all__ = [
    "Habit",
    "HabitEntry",
]
