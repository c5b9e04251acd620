"""
app/main.py

FastAPI application factory for the habit import service.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

logger = logging.getLogger(__name__)


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    database_urls = [
        os.getenv(name, "").strip() for name in ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL")
    ]
    configured = [url for url in database_urls if url]
    if not configured:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )
    elif not any(url.startswith(("postgres://", "postgresql")) for url in configured):
        errors.append("Database URL must point at PostgreSQL (postgres:// or postgresql://).")

    for name in (
        "HABIT_IMPORT_MAX_FILE_BYTES",
        "HABIT_IMPORT_DATE_SAMPLE_ROWS",
        "HABIT_IMPORT_MAX_ISSUES",
        "HABIT_IMPORT_STREAK_LOOKBACK_DAYS",
        "HABIT_IMPORT_AUTO_MATCH_THRESHOLD",
        "HABIT_IMPORT_MIN_MATCH_CONFIDENCE",
    ):
        raw_value = os.getenv(name)
        if raw_value is None:
            continue
        try:
            int(raw_value)
        except ValueError:
            errors.append(f"{name}={raw_value!r} is not an integer.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Abort startup when the habit tables have not been migrated.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers habit models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    actual: set[str] = set(sa_inspect(get_engine()).get_table_names())
    missing = set(Base.metadata.tables.keys()) - actual

    if missing:
        logger.critical(
            "Schema mismatch: %d table(s) missing from the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema before serving imports."""
    _check_db()
    logger.info("Database connectivity confirmed")
    _check_schema()
    logger.info("Database schema validated")
    yield
    logger.info("Habit import service shutting down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Habit Import API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import habit_import_router

    application.include_router(habit_import_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
