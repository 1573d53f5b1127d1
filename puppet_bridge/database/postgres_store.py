from __future__ import annotations

import asyncio
import logging
from typing import Any

import asyncpg

from .errors import StorageError


logger = logging.getLogger("puppet_bridge")

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def _affected_rows(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 1" or "INSERT 0 1".
    parts = str(status or "").split()
    if not parts:
        return 0
    try:
        return int(parts[-1])
    except ValueError:
        return 0


class PostgresDatabase:
    """Postgres storage handle implementing the same API as SQLiteDatabase."""

    SCHEMA_VERSION = 1
    backend_name = "postgres"

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 6) -> None:
        self.dsn = dsn.strip()
        if not self.dsn:
            raise ValueError("POSTGRES_DSN cannot be empty")
        self.min_size = max(0, min_size)
        self.max_size = max(1, max_size, self.min_size)
        self._pool: "asyncpg.Pool | None" = None
        self._pool_lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_pool(self) -> "asyncpg.Pool":
        async with self._pool_lock:
            if self._pool is None:
                try:
                    self._pool = await asyncpg.create_pool(
                        dsn=self.dsn,
                        min_size=self.min_size,
                        max_size=self.max_size,
                        command_timeout=30.0,
                    )
                except _DRIVER_ERRORS as exc:
                    raise StorageError(f"postgres connection failed: {exc}") from exc
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        self._initialized = False

    async def ping(self) -> None:
        await self.execute("SELECT 1")

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            pool = await self._ensure_pool()
            try:
                async with pool.acquire() as conn:
                    async with conn.transaction():
                        await self._bootstrap(conn)
            except _DRIVER_ERRORS as exc:
                raise StorageError(f"postgres schema bootstrap failed: {exc}") from exc
            self._initialized = True
        logger.info("Postgres schema ready (version=%s)", self.SCHEMA_VERSION)

    async def _bootstrap(self, conn: "asyncpg.Connection") -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS puppet_bridge_version (
                version INTEGER NOT NULL
            )
            """
        )
        version = await conn.fetchval("SELECT MAX(version) FROM puppet_bridge_version")
        version = int(version or 0)
        if version > self.SCHEMA_VERSION:
            raise RuntimeError(
                f"Postgres schema version {version} is newer than supported {self.SCHEMA_VERSION}. "
                "Upgrade the bridge before starting."
            )
        await self._create_schema(conn)
        if version != self.SCHEMA_VERSION:
            await conn.execute("DELETE FROM puppet_bridge_version")
            await conn.execute("INSERT INTO puppet_bridge_version (version) VALUES ($1)", self.SCHEMA_VERSION)

    async def _create_schema(self, conn: "asyncpg.Connection") -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS puppet (
                username TEXT PRIMARY KEY,
                avatar TEXT,
                avatar_url TEXT,
                displayname TEXT,
                name_quality SMALLINT,
                name_set BOOLEAN DEFAULT false,
                avatar_set BOOLEAN DEFAULT false,
                last_sync BIGINT DEFAULT 0,
                custom_mxid TEXT,
                access_token TEXT,
                next_batch TEXT,
                enable_presence BOOLEAN DEFAULT true,
                enable_receipts BOOLEAN DEFAULT true,
                first_activity_ts BIGINT,
                last_activity_ts BIGINT
            );

            CREATE INDEX IF NOT EXISTS idx_puppet_custom_mxid
            ON puppet(custom_mxid);
            """
        )

    async def query(self, sql: str, *args: Any) -> list["asyncpg.Record"]:
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return list(await conn.fetch(sql, *args))
        except _DRIVER_ERRORS as exc:
            raise StorageError(f"postgres query failed: {exc}") from exc

    async def query_row(self, sql: str, *args: Any) -> "asyncpg.Record | None":
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchrow(sql, *args)
        except _DRIVER_ERRORS as exc:
            raise StorageError(f"postgres query failed: {exc}") from exc

    async def execute(self, sql: str, *args: Any) -> int:
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                status = await conn.execute(sql, *args)
        except _DRIVER_ERRORS as exc:
            raise StorageError(f"postgres statement failed: {exc}") from exc
        return _affected_rows(status)
