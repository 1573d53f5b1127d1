from __future__ import annotations

import sqlite3
from typing import Any

from .errors import StorageError
from .storage.schema import SQLiteSchemaMixin
from .storage.utils import _sqlite_connection, _sqlite_placeholders


class SQLiteDatabase(SQLiteSchemaMixin):
    """SQLite storage handle; every call runs on its own short-lived connection."""

    backend_name = "sqlite"

    async def ping(self) -> None:
        await self.query_row("SELECT 1")

    async def close(self) -> None:
        return None

    async def query(self, sql: str, *args: Any) -> list[tuple[Any, ...]]:
        try:
            async with _sqlite_connection(self.db_path) as db:
                async with db.execute(_sqlite_placeholders(sql), args) as cursor:
                    rows = await cursor.fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"sqlite query failed: {exc}") from exc
        return [tuple(row) for row in rows]

    async def query_row(self, sql: str, *args: Any) -> tuple[Any, ...] | None:
        try:
            async with _sqlite_connection(self.db_path) as db:
                async with db.execute(_sqlite_placeholders(sql), args) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"sqlite query failed: {exc}") from exc
        if row is None:
            return None
        return tuple(row)

    async def execute(self, sql: str, *args: Any) -> int:
        try:
            async with _sqlite_connection(self.db_path) as db:
                cursor = await db.execute(_sqlite_placeholders(sql), args)
                affected = cursor.rowcount
                await cursor.close()
                await db.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"sqlite statement failed: {exc}") from exc
        return max(0, int(affected))
