"""
app/validators/loop_habits_validator.py

Structural and cross-file validation for Loop Habits root exports.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime

from app.domain.habit_import import EntityKey, ImportIssue, IssueKind, RawFileSet

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
)

REQUIRED_HABIT_COLUMNS: tuple[str, ...] = ("position", "name", "question", "description")
MIN_HABIT_COLUMNS = 4


def read_csv_rows(text: str) -> list[list[str]]:
    """
    Parse CSV text into rows, dropping blank lines.

    Raises csv.Error on malformed input.
    """

    stream = io.StringIO(text.lstrip("\ufeff"), newline="")
    return [
        [cell.strip() for cell in row]
        for row in csv.reader(stream)
        if any(cell.strip() for cell in row)
    ]


def parse_checkmark_date(value: str | None) -> date | None:
    """
    Parse a calendar day from an export cell, or return None.
    """

    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None

    normalized = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        return datetime.fromisoformat(normalized).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


@dataclass(frozen=True)
class ValidationResult:
    errors: list[ImportIssue] = field(default_factory=list)
    warnings: list[ImportIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class LoopHabitsValidator:
    """
    Validates the three files of a root export without modifying them.

    Only structural problems are errors; everything the importer can
    tolerate is reported as a warning.
    """

    def __init__(self, *, max_file_bytes: int, date_sample_rows: int) -> None:
        self._max_file_bytes = max(1, max_file_bytes)
        self._date_sample_rows = max(1, date_sample_rows)

    def validate(self, files: RawFileSet) -> ValidationResult:
        issues: list[ImportIssue] = []
        issues.extend(self._validate_size("Habits", files.habits))
        issues.extend(self._validate_size("Checkmarks", files.checkmarks))
        issues.extend(self._validate_size("Scores", files.scores))
        issues.extend(self.validate_habits(files.habits))
        issues.extend(self.validate_checkmarks(files.checkmarks))
        issues.extend(self.validate_scores(files.scores))
        issues.extend(self.cross_validate(files))

        return ValidationResult(
            errors=[issue for issue in issues if issue.is_error],
            warnings=[issue for issue in issues if not issue.is_error],
        )

    def validate_habits(self, text: str) -> list[ImportIssue]:
        if self._is_blank(text):
            return [ImportIssue.error(IssueKind.VALIDATION, "Habits CSV file is empty or missing")]

        rows, parse_error = self._read(text, "Habits")
        if parse_error is not None:
            return [parse_error]
        if len(rows) < 2:
            return [
                ImportIssue.error(
                    IssueKind.VALIDATION,
                    "Habits CSV must have at least a header and one data row",
                )
            ]

        issues: list[ImportIssue] = []
        header = ",".join(rows[0]).lower()
        missing = [column for column in REQUIRED_HABIT_COLUMNS if column not in header]
        if missing:
            issues.append(
                ImportIssue.error(
                    IssueKind.VALIDATION,
                    f"Habits CSV missing required columns: {', '.join(missing)}",
                )
            )

        for row_number, row in enumerate(rows[1:], start=2):
            if len(row) < MIN_HABIT_COLUMNS:
                issues.append(
                    ImportIssue.warning(
                        IssueKind.VALIDATION,
                        f"Row {row_number} has insufficient columns, may be skipped",
                        record_index=row_number,
                    )
                )
            name = row[1] if len(row) > 1 else ""
            if not name:
                issues.append(
                    ImportIssue.error(
                        IssueKind.VALIDATION,
                        f"Row {row_number} missing habit name",
                        record_index=row_number,
                    )
                )
        return issues

    def validate_checkmarks(self, text: str) -> list[ImportIssue]:
        if self._is_blank(text):
            return [ImportIssue.error(IssueKind.VALIDATION, "Checkmarks CSV file is empty or missing")]

        rows, parse_error = self._read(text, "Checkmarks")
        if parse_error is not None:
            return [parse_error]
        if len(rows) < 2:
            return [
                ImportIssue.warning(
                    IssueKind.VALIDATION,
                    "Checkmarks CSV has no data rows - no habit entries will be imported",
                )
            ]

        issues: list[ImportIssue] = []
        sample = rows[1 : 1 + self._date_sample_rows]
        for row_number, row in enumerate(sample, start=2):
            raw_date = row[0] if row else ""
            if raw_date and parse_checkmark_date(raw_date) is None:
                issues.append(
                    ImportIssue.warning(
                        IssueKind.VALIDATION,
                        f"Row {row_number} has invalid date format: {raw_date}",
                        record_index=row_number,
                    )
                )
        return issues

    def validate_scores(self, text: str) -> list[ImportIssue]:
        if self._is_blank(text):
            return [
                ImportIssue.warning(
                    IssueKind.VALIDATION,
                    "Scores CSV file is empty - scores will not be imported",
                )
            ]
        _, parse_error = self._read(text, "Scores")
        if parse_error is not None:
            return [
                ImportIssue.warning(
                    IssueKind.VALIDATION,
                    f"{parse_error.message} - scores will not be imported",
                )
            ]
        return []

    def cross_validate(self, files: RawFileSet) -> list[ImportIssue]:
        if self._is_blank(files.habits) or self._is_blank(files.checkmarks):
            return []
        try:
            habit_rows = read_csv_rows(files.habits)
            checkmark_rows = read_csv_rows(files.checkmarks)
        except csv.Error as exc:
            return [
                ImportIssue.warning(
                    IssueKind.VALIDATION,
                    f"Could not cross-validate files: {exc}",
                )
            ]

        habit_names: dict[EntityKey, str] = {}
        for row in habit_rows[1:]:
            if len(row) > 1 and row[1]:
                habit_names.setdefault(EntityKey.from_name(row[1]), row[1])

        checkmark_names: dict[EntityKey, str] = {}
        if checkmark_rows:
            for name in checkmark_rows[0][1:]:
                if name:
                    checkmark_names.setdefault(EntityKey.from_name(name), name)

        issues: list[ImportIssue] = []
        missing = [name for key, name in habit_names.items() if key not in checkmark_names]
        extra = [name for key, name in checkmark_names.items() if key not in habit_names]
        if missing:
            issues.append(
                ImportIssue.warning(
                    IssueKind.VALIDATION,
                    f"Habits missing from checkmarks CSV: {', '.join(missing)}",
                )
            )
        if extra:
            issues.append(
                ImportIssue.warning(
                    IssueKind.VALIDATION,
                    f"Extra habits in checkmarks CSV: {', '.join(extra)}",
                )
            )
        return issues

    def _validate_size(self, label: str, text: str) -> list[ImportIssue]:
        size = len((text or "").encode("utf-8"))
        if size > self._max_file_bytes:
            return [
                ImportIssue.error(
                    IssueKind.VALIDATION,
                    f"{label} CSV is {size} bytes; the limit is {self._max_file_bytes} bytes",
                )
            ]
        return []

    @staticmethod
    def _read(text: str, label: str) -> tuple[list[list[str]], ImportIssue | None]:
        try:
            return read_csv_rows(text), None
        except csv.Error as exc:
            return [], ImportIssue.error(IssueKind.VALIDATION, f"{label} CSV is not valid CSV: {exc}")

    @staticmethod
    def _is_blank(text: str | None) -> bool:
        return text is None or text.strip() == ""
