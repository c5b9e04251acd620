"""
app/schemas/habit_import.py

Request and stream-event schemas for Loop Habits import endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter

from app.domain.habit_import import (
    ConflictRecord,
    ConflictResolution,
    ImportIssue,
    ImportProgress,
    ImportStatistics,
    ImportSummary,
    ResolutionStrategy,
)


class ConflictResolutionRequest(BaseModel):
    """
    One user decision for a naming conflict.

    Accepts both ``habit_name``/``new_name`` and the camelCase keys the web
    client sends.
    """

    habit_name: str = Field(..., min_length=1, validation_alias=AliasChoices("habit_name", "habitName"))
    resolution: ResolutionStrategy = ResolutionStrategy.MERGE
    new_name: str | None = Field(default=None, validation_alias=AliasChoices("new_name", "newName"))

    def to_domain(self) -> ConflictResolution:
        return ConflictResolution(
            habit_name=self.habit_name,
            resolution=self.resolution,
            new_name=self.new_name,
        )


ConflictResolutionList = TypeAdapter(list[ConflictResolutionRequest])


class ImportProgressResponse(BaseModel):
    stage: str
    percent: int = Field(..., ge=0, le=100)
    message: str
    details: str | None = None

    @classmethod
    def from_domain(cls, progress: ImportProgress) -> ImportProgressResponse:
        return cls(
            stage=progress.stage.value,
            percent=progress.percent,
            message=progress.message,
            details=progress.details,
        )


class ImportIssueResponse(BaseModel):
    type: str
    severity: str
    message: str
    row: int | None = None
    habit_name: str | None = None
    details: Any = None

    @classmethod
    def from_domain(cls, issue: ImportIssue) -> ImportIssueResponse:
        details = issue.details
        if details is not None and not isinstance(details, (str, int, float, bool, dict, list)):
            details = str(details)
        return cls(
            type=issue.kind.value,
            severity=issue.severity.value,
            message=issue.message,
            row=issue.record_index,
            habit_name=issue.habit_name,
            details=details,
        )


class ExistingHabitResponse(BaseModel):
    id: str
    name: str
    description: str = ""
    created_at: datetime | None = None
    total_entries: int = Field(..., ge=0)


class IncomingHabitResponse(BaseModel):
    name: str
    description: str = ""
    entry_count: int = Field(..., ge=0)


class ConflictRecordResponse(BaseModel):
    habit_name: str
    existing_habit: ExistingHabitResponse
    new_habit: IncomingHabitResponse
    resolution: ResolutionStrategy
    new_name: str | None = None
    confidence: int = Field(..., ge=0, le=100)

    @classmethod
    def from_domain(cls, conflict: ConflictRecord) -> ConflictRecordResponse:
        return cls(
            habit_name=conflict.habit_name,
            existing_habit=ExistingHabitResponse(
                id=conflict.existing.id,
                name=conflict.existing.name,
                description=conflict.existing.description,
                created_at=conflict.existing.created_at,
                total_entries=conflict.existing.total_entries,
            ),
            new_habit=IncomingHabitResponse(
                name=conflict.incoming.name,
                description=conflict.incoming.description,
                entry_count=conflict.incoming.entry_count,
            ),
            resolution=conflict.resolution,
            new_name=conflict.new_name,
            confidence=conflict.confidence,
        )


class ImportStatisticsResponse(BaseModel):
    habits_by_category: dict[str, int] = Field(default_factory=dict)
    entries_by_month: dict[str, int] = Field(default_factory=dict)
    average_streak_length: float = 0.0
    most_active_habit: str = ""
    average_score_by_habit: dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, statistics: ImportStatistics) -> ImportStatisticsResponse:
        return cls(
            habits_by_category=dict(statistics.habits_by_category),
            entries_by_month=dict(statistics.entries_by_month),
            average_streak_length=statistics.average_streak_length,
            most_active_habit=statistics.most_active_habit,
            average_score_by_habit=dict(statistics.average_score_by_habit),
        )


class ImportSummaryResponse(BaseModel):
    success: bool
    total_habits: int = Field(..., ge=0)
    imported_habits: int = Field(..., ge=0)
    skipped_habits: int = Field(..., ge=0)
    total_entries: int = Field(..., ge=0)
    imported_entries: int = Field(..., ge=0)
    failed_entries: int = Field(..., ge=0)
    conflicts: list[ConflictRecordResponse] = Field(default_factory=list)
    errors: list[ImportIssueResponse] = Field(default_factory=list)
    warnings: list[ImportIssueResponse] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    processing_time_ms: int = Field(..., ge=0)
    statistics: ImportStatisticsResponse = Field(default_factory=ImportStatisticsResponse)
    requires_resolution: bool = False

    @classmethod
    def from_domain(cls, summary: ImportSummary) -> ImportSummaryResponse:
        return cls(
            success=summary.success,
            total_habits=summary.total_habits,
            imported_habits=summary.imported_habits,
            skipped_habits=summary.skipped_habits,
            total_entries=summary.total_entries,
            imported_entries=summary.imported_entries,
            failed_entries=summary.failed_entries,
            conflicts=[ConflictRecordResponse.from_domain(conflict) for conflict in summary.conflicts],
            errors=[ImportIssueResponse.from_domain(issue) for issue in summary.errors],
            warnings=[ImportIssueResponse.from_domain(issue) for issue in summary.warnings],
            recommendations=list(summary.recommendations),
            processing_time_ms=summary.processing_time_ms,
            statistics=ImportStatisticsResponse.from_domain(summary.statistics),
            requires_resolution=summary.requires_resolution,
        )


class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    progress: ImportProgressResponse


class ConflictsEvent(BaseModel):
    type: Literal["conflicts"] = "conflicts"
    conflicts: list[ConflictRecordResponse]


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    summary: ImportSummaryResponse


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str
