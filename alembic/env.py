from __future__ import annotations

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import engine_from_config, pool

from db.base import Base
from db.config import load_env_files, normalize_postgres_url, resolve_database_url
from db.models import Habit, HabitEntry

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Tables this project owns; anything else in the database is left alone by autogenerate.
MANAGED_TABLES = frozenset({Habit.__tablename__, HabitEntry.__tablename__})


def _resolve_database_url() -> str:
    """
    Resolve the migration target.

    ``-x db_url=...`` wins, then ALEMBIC_DATABASE_URL, then the same
    DATABASE_URL / CLOUD_DATABASE_URL / LOCAL_DATABASE_URL chain the API uses.
    """

    load_env_files()

    x_args = context.get_x_argument(as_dictionary=True)
    candidate = x_args.get("db_url") or os.getenv("ALEMBIC_DATABASE_URL") or ""
    url = normalize_postgres_url(candidate.strip()) if candidate.strip() else resolve_database_url()

    if not url.startswith("postgresql"):
        raise RuntimeError("Habit migrations support PostgreSQL URLs only.")
    return url


def _include_object(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    if type_ == "table":
        return name in MANAGED_TABLES
    return True


def _context_options() -> dict[str, Any]:
    return {
        "target_metadata": target_metadata,
        "include_object": _include_object,
        "compare_type": True,
        "compare_server_default": True,
    }


def run_migrations_offline() -> None:
    context.configure(
        url=_resolve_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _resolve_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        future=True,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, **_context_options())

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
