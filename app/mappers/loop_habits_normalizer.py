"""
app/mappers/loop_habits_normalizer.py

Turns Loop Habits export text into typed habits and dated entries.

Row-level problems never abort a file: the row is skipped, logged, and
reported as a ``parsing`` warning on the returned ParsedImport.
"""

from __future__ import annotations

import csv
import logging
import re
from datetime import date

from app.domain.habit_import import (
    EntityKey,
    ImportIssue,
    IssueKind,
    NormalizedEntry,
    NormalizedHabit,
    ParsedImport,
    PerHabitFile,
    Polarity,
    RawFileSet,
)
from app.domain.habit_polarity import classify_polarity, normalize_checkmark
from app.validators.loop_habits_validator import parse_checkmark_date, read_csv_rows

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#3b82f6"
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_MARKUP_RE = re.compile(r"[<>]")


def sanitize_text(value: str | None) -> str:
    if not value:
        return ""
    return _MARKUP_RE.sub("", value.strip())


def sanitize_color(value: str | None) -> str:
    if not value:
        return DEFAULT_COLOR
    candidate = value.strip()
    if _COLOR_RE.match(candidate):
        return candidate
    return DEFAULT_COLOR


def parse_raw_code(value: str | None) -> int:
    """
    Parse a checkmark cell as an integer code; anything unparsable is 0.
    """

    if value is None:
        return 0
    raw = value.strip()
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        return 0


def _parse_int(value: str | None, default: int) -> int:
    try:
        parsed = int((value or "").strip())
    except ValueError:
        return default
    return parsed or default


class LoopHabitsNormalizer:
    """
    Parses root and per-habit Loop Habits exports.
    """

    def __init__(self, *, max_issues: int = 500, log_issues: bool = True) -> None:
        self._max_issues = max(1, max_issues)
        self._log_issues = log_issues

    def normalize(self, files: RawFileSet) -> ParsedImport:
        parsed = ParsedImport()
        parsed.habits = self.parse_habits(files.habits, issues=parsed.issues)
        parsed.entries = self.parse_checkmarks(files.checkmarks, issues=parsed.issues)
        parsed.scores = self.parse_scores(files.scores, issues=parsed.issues)
        logger.info(
            "Normalized Loop export habits=%s entries=%s scored_habits=%s issues=%s",
            len(parsed.habits),
            parsed.total_entries,
            len(parsed.scores),
            len(parsed.issues),
        )
        return parsed

    def parse_habits(self, text: str, *, issues: list[ImportIssue]) -> list[NormalizedHabit]:
        rows = self._read(text, "Habits", issues)
        habits: list[NormalizedHabit] = []

        for row_number, row in enumerate(rows[1:], start=2):
            try:
                cells = row + [""] * (7 - len(row))
                name = sanitize_text(cells[1])
                if not name:
                    self._record(
                        issues,
                        ImportIssue.warning(
                            IssueKind.PARSING,
                            f"Habits row {row_number} has no name and was skipped",
                            record_index=row_number,
                        ),
                    )
                    continue
                habits.append(
                    NormalizedHabit(
                        name=name,
                        question=sanitize_text(cells[2]),
                        description=sanitize_text(cells[3]),
                        position=_parse_int(cells[0], row_number - 1),
                        repetition_target=_parse_int(cells[4], 1),
                        interval_days=_parse_int(cells[5], 1),
                        color=sanitize_color(cells[6]),
                        polarity=classify_polarity(name),
                    )
                )
            except Exception as exc:  # noqa: BLE001
                self._record(
                    issues,
                    ImportIssue.warning(
                        IssueKind.PARSING,
                        f"Failed to parse habits row {row_number}: {exc}",
                        record_index=row_number,
                    ),
                )
        return habits

    def parse_checkmarks(
        self,
        text: str,
        *,
        issues: list[ImportIssue],
    ) -> dict[EntityKey, dict[date, NormalizedEntry]]:
        rows = self._read(text, "Checkmarks", issues)
        if not rows:
            return {}

        columns = self._header_columns(rows[0])
        data: dict[EntityKey, dict[date, NormalizedEntry]] = {}

        for row_number, row in enumerate(rows[1:], start=2):
            try:
                entry_date = parse_checkmark_date(row[0] if row else None)
                if entry_date is None:
                    self._record(
                        issues,
                        ImportIssue.warning(
                            IssueKind.PARSING,
                            f"Checkmarks row {row_number} has an unparsable date and was skipped",
                            record_index=row_number,
                        ),
                    )
                    continue

                for index, cell in enumerate(row[1:], start=1):
                    column = columns.get(index)
                    if column is None:
                        continue
                    name, key, polarity = column
                    raw_value = parse_raw_code(cell)
                    # Later rows for the same day overwrite earlier ones.
                    data.setdefault(key, {})[entry_date] = NormalizedEntry(
                        habit_name=name,
                        date=entry_date,
                        raw_value=raw_value,
                        normalized_value=normalize_checkmark(raw_value, polarity),
                    )
            except Exception as exc:  # noqa: BLE001
                self._record(
                    issues,
                    ImportIssue.warning(
                        IssueKind.PARSING,
                        f"Failed to parse checkmarks row {row_number}: {exc}",
                        record_index=row_number,
                    ),
                )
        return data

    def parse_scores(
        self,
        text: str,
        *,
        issues: list[ImportIssue],
    ) -> dict[EntityKey, dict[date, float]]:
        if not text or not text.strip():
            return {}
        rows = self._read(text, "Scores", issues)
        if not rows:
            return {}

        header = rows[0]
        data: dict[EntityKey, dict[date, float]] = {}
        for row_number, row in enumerate(rows[1:], start=2):
            entry_date = parse_checkmark_date(row[0] if row else None)
            if entry_date is None:
                continue
            for index, cell in enumerate(row[1:], start=1):
                if index >= len(header) or not header[index]:
                    continue
                try:
                    score = float(cell)
                except ValueError:
                    continue
                data.setdefault(EntityKey.from_name(header[index]), {})[entry_date] = score
        return data

    def parse_per_habit_file(
        self,
        habit_file: PerHabitFile,
        *,
        habit_name: str,
        polarity: Polarity,
        numeric: bool = False,
        issues: list[ImportIssue],
    ) -> dict[date, NormalizedEntry]:
        """
        Parse one per-habit ``Checkmarks.csv`` (``Date,Value[,Notes]``).

        Loop stores numerical habits multiplied by 1000; when ``numeric`` is
        set the scaled value is kept alongside the checkmark code.
        """

        rows = self._read(habit_file.content, habit_file.path, issues)
        if len(rows) < 2:
            return {}

        header = [cell.lower() for cell in rows[0]]
        date_index = self._find_column(header, ("timestamp", "date"))
        value_index = self._find_column(header, ("value",))
        notes_index = self._find_column(header, ("notes",))
        if date_index is None or value_index is None:
            self._record(
                issues,
                ImportIssue.warning(
                    IssueKind.PARSING,
                    f"{habit_file.path} has no date/value columns and was skipped",
                    habit_name=habit_name,
                ),
            )
            return {}

        entries: dict[date, NormalizedEntry] = {}
        for row_number, row in enumerate(rows[1:], start=2):
            if len(row) <= max(date_index, value_index):
                continue
            entry_date = parse_checkmark_date(row[date_index])
            if entry_date is None:
                self._record(
                    issues,
                    ImportIssue.warning(
                        IssueKind.PARSING,
                        f"{habit_file.path} row {row_number} has an unparsable date and was skipped",
                        record_index=row_number,
                        habit_name=habit_name,
                    ),
                )
                continue
            raw_value = parse_raw_code(row[value_index])
            notes = row[notes_index] if notes_index is not None and notes_index < len(row) else ""
            entries[entry_date] = NormalizedEntry(
                habit_name=habit_name,
                date=entry_date,
                raw_value=raw_value,
                normalized_value=normalize_checkmark(raw_value, polarity),
                notes=notes or None,
                numeric_value=raw_value / 1000 if numeric else None,
            )
        return entries

    def _header_columns(self, header: list[str]) -> dict[int, tuple[str, EntityKey, Polarity]]:
        columns: dict[int, tuple[str, EntityKey, Polarity]] = {}
        for index, raw_name in enumerate(header[1:], start=1):
            name = sanitize_text(raw_name)
            if not name:
                continue
            columns[index] = (name, EntityKey.from_name(name), classify_polarity(name))
        return columns

    def _read(self, text: str, label: str, issues: list[ImportIssue]) -> list[list[str]]:
        if not text:
            return []
        try:
            return read_csv_rows(text)
        except csv.Error as exc:
            self._record(
                issues,
                ImportIssue.warning(IssueKind.PARSING, f"{label} could not be parsed: {exc}"),
            )
            return []

    @staticmethod
    def _find_column(header: list[str], names: tuple[str, ...]) -> int | None:
        for index, column in enumerate(header):
            if column in names:
                return index
        return None

    def _record(self, issues: list[ImportIssue], issue: ImportIssue) -> None:
        if self._log_issues:
            logger.warning(
                "Loop import row skipped kind=%s record=%s message=%s",
                issue.kind.value,
                issue.record_index,
                issue.message,
            )
        if len(issues) < self._max_issues:
            issues.append(issue)
