"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class HabitImportSettings:
    """
    Runtime settings for Loop Habits imports.
    """

    max_file_bytes: int = 10 * 1024 * 1024
    date_sample_rows: int = 10
    max_issues: int = 500
    streak_lookback_days: int = 90
    auto_match_threshold: int = 90
    min_match_confidence: int = 70
    log_issues: bool = True


@lru_cache(maxsize=1)
def get_habit_import_settings() -> HabitImportSettings:
    """
    Return cached habit import settings from environment variables.
    """

    defaults = HabitImportSettings()
    min_confidence = min(100, max(0, _get_int_env("HABIT_IMPORT_MIN_MATCH_CONFIDENCE", defaults.min_match_confidence)))
    return HabitImportSettings(
        max_file_bytes=max(1, _get_int_env("HABIT_IMPORT_MAX_FILE_BYTES", defaults.max_file_bytes)),
        date_sample_rows=max(1, _get_int_env("HABIT_IMPORT_DATE_SAMPLE_ROWS", defaults.date_sample_rows)),
        max_issues=max(1, _get_int_env("HABIT_IMPORT_MAX_ISSUES", defaults.max_issues)),
        streak_lookback_days=max(1, _get_int_env("HABIT_IMPORT_STREAK_LOOKBACK_DAYS", defaults.streak_lookback_days)),
        auto_match_threshold=min(
            100,
            max(min_confidence, _get_int_env("HABIT_IMPORT_AUTO_MATCH_THRESHOLD", defaults.auto_match_threshold)),
        ),
        min_match_confidence=min_confidence,
        log_issues=_get_bool_env("HABIT_IMPORT_LOG_ISSUES", defaults.log_issues),
    )
