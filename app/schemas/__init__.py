"""
app/schemas package marker.
"""

from app.schemas.habit_import import (
    CompleteEvent,
    ConflictRecordResponse,
    ConflictResolutionRequest,
    ConflictsEvent,
    ErrorEvent,
    ImportProgressResponse,
    ImportSummaryResponse,
    ProgressEvent,
)

__all__ = [
    "CompleteEvent",
    "ConflictRecordResponse",
    "ConflictResolutionRequest",
    "ConflictsEvent",
    "ErrorEvent",
    "ImportProgressResponse",
    "ImportSummaryResponse",
    "ProgressEvent",
]
