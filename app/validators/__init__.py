"""
app/validators package marker.
"""

from app.validators.loop_habits_validator import LoopHabitsValidator, ValidationResult

__all__ = [
    "LoopHabitsValidator",
    "ValidationResult",
]
