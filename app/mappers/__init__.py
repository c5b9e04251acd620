"""
app/mappers package marker.
"""

from app.mappers.loop_habits_normalizer import LoopHabitsNormalizer

__all__ = [
    "LoopHabitsNormalizer",
]
