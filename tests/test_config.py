from __future__ import annotations

import pytest

from thoughtbox.core import config as core_config
from thoughtbox.repositories import MemoryStorage, SQLRepository, get_storage


@pytest.fixture()
def fresh_settings(monkeypatch):
    for name in ("STORAGE_BACKEND", "DATABASE_URL", "MEMORY_SNAPSHOT_PATH", "LOCAL_TIMEZONE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    core_config.get_settings.cache_clear()
    get_storage.cache_clear()
    yield monkeypatch
    core_config.get_settings.cache_clear()
    get_storage.cache_clear()


def test_defaults(fresh_settings):
    settings = core_config.get_settings()
    assert settings.storage_backend == "memory"
    assert settings.local_timezone == "UTC"
    assert settings.log_level == "INFO"
    assert isinstance(get_storage(), MemoryStorage)
    assert get_storage() is get_storage()


def test_unknown_backend_falls_back_to_memory(fresh_settings):
    fresh_settings.setenv("STORAGE_BACKEND", "mongo")
    assert core_config.get_settings().storage_backend == "memory"


def test_sql_backend_selected(fresh_settings, tmp_path):
    fresh_settings.setenv("STORAGE_BACKEND", "SQL")
    fresh_settings.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'x.db'}")
    assert isinstance(get_storage(), SQLRepository)


def test_memory_backend_loads_snapshot_path(fresh_settings, tmp_path):
    path = tmp_path / "snap.json"
    fresh_settings.setenv("MEMORY_SNAPSHOT_PATH", str(path))
    storage = get_storage()
    assert isinstance(storage, MemoryStorage)
    assert storage.save() == path
    assert path.exists()
