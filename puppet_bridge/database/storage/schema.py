from __future__ import annotations

from pathlib import Path

import aiosqlite

from .utils import _sqlite_connection


class SQLiteSchemaMixin:
    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    async def init(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0

            if version > self.SCHEMA_VERSION:
                raise RuntimeError(
                    "SQLite schema version mismatch detected (database is newer than this bridge build). "
                    f"Found user_version={version}, supported={self.SCHEMA_VERSION}."
                )

            await self._create_schema(db)
            if version != self.SCHEMA_VERSION:
                await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await db.commit()

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS puppet (
                username TEXT PRIMARY KEY,
                avatar TEXT,
                avatar_url TEXT,
                displayname TEXT,
                name_quality INTEGER,
                name_set INTEGER DEFAULT 0,
                avatar_set INTEGER DEFAULT 0,
                last_sync INTEGER DEFAULT 0,
                custom_mxid TEXT,
                access_token TEXT,
                next_batch TEXT,
                enable_presence INTEGER DEFAULT 1,
                enable_receipts INTEGER DEFAULT 1,
                first_activity_ts INTEGER,
                last_activity_ts INTEGER
            );

            CREATE INDEX IF NOT EXISTS idx_puppet_custom_mxid
            ON puppet(custom_mxid);
            """
        )
