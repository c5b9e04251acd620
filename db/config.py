"""
Environment-driven database configuration for the habit store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_TRUE_VALUES = {"1", "true", "yes", "on"}
_CLOUD_ENVIRONMENTS = {"prod", "production", "staging", "cloud"}


def load_env_files() -> None:
    """
    Load KEY=VALUE pairs from `.env` then `.env.local` at the project root.
    Variables already present in the process environment win.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = (part.strip() for part in line.split("=", 1))
            if key:
                os.environ.setdefault(key, value.strip('"').strip("'"))


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite postgres URLs to the psycopg 3 driver form SQLAlchemy expects.
    """

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix) :]
    return url


def resolve_database_url() -> str:
    """
    DATABASE_URL, then CLOUD_DATABASE_URL in cloud-like ENVIRONMENTs, then LOCAL_DATABASE_URL.
    """

    load_env_files()

    candidates = [os.getenv("DATABASE_URL")]
    if os.getenv("ENVIRONMENT", "local").strip().lower() in _CLOUD_ENVIRONMENTS:
        candidates.append(os.getenv("CLOUD_DATABASE_URL"))
    candidates.append(os.getenv("LOCAL_DATABASE_URL"))

    for candidate in candidates:
        if candidate and candidate.strip():
            return normalize_postgres_url(candidate.strip())

    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL, or configure "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_recycle: int = 1800
    pool_size: int = 5
    max_overflow: int = 10


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    url = resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")
    return DatabaseSettings(
        url=url,
        echo=_env_bool("SQL_ECHO", False),
        pool_recycle=_env_int("DB_POOL_RECYCLE", 1800),
        pool_size=_env_int("DB_POOL_SIZE", 5),
        max_overflow=_env_int("DB_MAX_OVERFLOW", 10),
    )
