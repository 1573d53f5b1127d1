from __future__ import annotations

import os
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite


_PG_PLACEHOLDER = re.compile(r"\$(\d+)")


def _sqlite_busy_timeout_ms() -> int:
    raw = os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000").strip()
    try:
        timeout = int(raw)
    except ValueError:
        timeout = 5000
    return max(0, min(timeout, 60000))


@asynccontextmanager
async def _sqlite_connection(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA foreign_keys=ON")
        timeout_ms = _sqlite_busy_timeout_ms()
        if timeout_ms > 0:
            await db.execute(f"PRAGMA busy_timeout={timeout_ms}")
        yield db


def _sqlite_placeholders(query: str) -> str:
    # $1 -> ?1: SQLite numbered parameters keep reuse and ordering of Postgres-style queries.
    return _PG_PLACEHOLDER.sub(r"?\1", query)


def _str_or_empty(value: Any) -> str:
    return "" if value is None else str(value)


def _int_or_zero(value: Any) -> int:
    return 0 if value is None else int(value)


def _bool_or_false(value: Any) -> bool:
    return False if value is None else bool(value)


def _unix_to_datetime(value: Any) -> datetime | None:
    ts = _int_or_zero(value)
    if ts <= 0:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _datetime_to_unix(value: datetime | None) -> int:
    if value is None:
        return 0
    return int(value.timestamp())


def _zero_to_null(value: int) -> int | None:
    return value if value else None


def _clamp_name_quality(value: int) -> int:
    # Name quality is a small signed rank; keep it inside a one-byte range on every backend.
    return max(-128, min(127, int(value)))
