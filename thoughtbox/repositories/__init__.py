"""
Persistence adapters.

`MemoryStorage` keeps everything in process (optionally mirrored to a JSON
snapshot file) and `SQLRepository` talks to a relational database through
SQLAlchemy. Services depend on the `Storage` interface and obtain the
configured backend from `get_storage()`.
"""

from __future__ import annotations

from functools import lru_cache

from thoughtbox.core.config import get_settings
from thoughtbox.repositories.base import DuplicateUserError, Storage, StorageError
from thoughtbox.repositories.memory_storage import MemoryStorage
from thoughtbox.repositories.sql_repository import SQLRepository

__all__ = [
    "DuplicateUserError",
    "MemoryStorage",
    "SQLRepository",
    "Storage",
    "StorageError",
    "get_storage",
]


@lru_cache
def get_storage() -> Storage:
    """Build the backend selected by STORAGE_BACKEND (cached per process)."""
    settings = get_settings()
    if settings.storage_backend == "sql":
        return SQLRepository()
    return MemoryStorage(snapshot_path=settings.memory_snapshot_path or None)
