from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .ids import DEFAULT_USER_SERVER


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


@dataclass(slots=True)
class Settings:
    database_backend: str
    sqlite_path: Path
    postgres_dsn: str
    postgres_pool_max_size: int
    default_user_server: str
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_backend=_env_str("DATABASE_BACKEND", "sqlite", aliases=("BRIDGE_DATABASE_BACKEND",)).lower(),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/bridge.db")).expanduser(),
            postgres_dsn=_env_str("POSTGRES_DSN", "", aliases=("DATABASE_URL",)),
            postgres_pool_max_size=_env_int("POSTGRES_POOL_MAX_SIZE", 6),
            default_user_server=_env_str("DEFAULT_USER_SERVER", DEFAULT_USER_SERVER),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        if self.database_backend not in {"sqlite", "postgres"}:
            raise ValueError("DATABASE_BACKEND must be 'sqlite' or 'postgres'")
        if self.database_backend == "postgres" and not self.postgres_dsn:
            raise ValueError("POSTGRES_DSN is required when DATABASE_BACKEND=postgres")
        if self.postgres_pool_max_size < 1:
            raise ValueError("POSTGRES_POOL_MAX_SIZE must be >= 1")
        if not self.default_user_server or "@" in self.default_user_server:
            raise ValueError("DEFAULT_USER_SERVER must be a bare server name")
