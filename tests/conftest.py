from __future__ import annotations

from datetime import datetime, timedelta, timezone
import sys
from pathlib import Path

import pytest

# Keep the thoughtbox package importable during local test runs
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import delete  # noqa: E402

from thoughtbox.core import config as core_config  # noqa: E402
from thoughtbox.db import models  # noqa: E402
from thoughtbox.db import session as db_session  # noqa: E402
from thoughtbox.domain.records import NewClinic, NewUser  # noqa: E402
from thoughtbox.repositories import get_storage  # noqa: E402
from thoughtbox.repositories.memory_storage import MemoryStorage  # noqa: E402
from thoughtbox.repositories.sql_repository import SQLRepository  # noqa: E402


class FakeClock:
    """Deterministic clock: returns `current` and then moves it forward by `step`."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture()
def clock():
    return FakeClock(datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def sql_env(tmp_path, monkeypatch):
    """Configure a temporary SQLite database and reset settings/engine caches."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]
    core_config.get_settings.cache_clear()
    get_storage.cache_clear()


@pytest.fixture(params=["memory", "sql"])
def storage(request, clock):
    """Run the same test against both backends."""
    if request.param == "sql":
        request.getfixturevalue("sql_env")
        return SQLRepository(clock=clock, tz=timezone.utc)
    return MemoryStorage(clock=clock, tz=timezone.utc)


@pytest.fixture()
def drop_history():
    """Remove every history row of a thought, as for records imported without an audit trail."""

    def _drop(storage, thought_id: int) -> None:
        if isinstance(storage, MemoryStorage):
            for entry_id in [k for k, e in storage._history.items() if e.thought_id == thought_id]:
                del storage._history[entry_id]
            return
        with db_session.get_session() as session:
            session.execute(delete(models.ThoughtHistory).where(models.ThoughtHistory.thought_id == thought_id))
            session.commit()

    return _drop


@pytest.fixture()
def clinic_with_admin(storage):
    """A clinic with departments and one admin plus one regular member."""
    result = storage.setup_first_admin(
        NewUser(username="admin", email="admin@clinic.test", password="hash"),
        NewClinic(name="Main Clinic", departments=["General", "Cardiology", "Radiology"]),
    )
    member = storage.create_user(
        NewUser(username="nurse", email="nurse@clinic.test", password="hash", clinic_id=result.clinic.id)
    )
    return result.clinic, result.user, member

