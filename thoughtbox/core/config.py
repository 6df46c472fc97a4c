"""
Configuration helpers for the Thoughtbox backend.

Settings are read once from environment variables so repositories and
services never touch os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    storage_backend: str
    database_url: str
    memory_snapshot_path: str
    local_timezone: str
    log_level: str


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _choice(value: str | None, allowed: set[str], default: str) -> str:
        candidate = (value or "").strip().lower()
        return candidate if candidate in allowed else default

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        storage_backend=_choice(os.getenv("STORAGE_BACKEND"), {"memory", "sql"}, "memory"),
        database_url=os.getenv("DATABASE_URL", ""),
        memory_snapshot_path=os.getenv("MEMORY_SNAPSHOT_PATH", ""),
        local_timezone=(os.getenv("LOCAL_TIMEZONE") or "UTC").strip(),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    )
