"""
app/api/routers package marker.
"""

from app.api.routers.habit_import import router as habit_import_router

__all__ = [
    "habit_import_router",
]
