from __future__ import annotations

from typing import Any

from ..config import Settings
from .store import SQLiteDatabase


def build_database(settings: Settings) -> Any:
    backend = settings.database_backend
    if backend == "sqlite":
        return SQLiteDatabase(settings.sqlite_path)
    if backend != "postgres":
        raise ValueError("DATABASE_BACKEND must be 'sqlite' or 'postgres'")
    if not settings.postgres_dsn:
        raise ValueError("POSTGRES_DSN is required when DATABASE_BACKEND=postgres")

    from .postgres_store import PostgresDatabase

    return PostgresDatabase(settings.postgres_dsn, max_size=settings.postgres_pool_max_size)
