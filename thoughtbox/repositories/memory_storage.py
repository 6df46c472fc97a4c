"""
In-memory storage backend.

Each entity lives in its own id -> record table with a monotonic id counter.
Every public method runs under one re-entrant lock, so department cascades,
edit counters and first-time setup are never interleaved. The whole state can
be written to and read back from a JSON snapshot file.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import asdict, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional, TypeVar
import json
import logging
import threading

from thoughtbox.domain.departments import DepartmentError, DepartmentList, departments_or_default
from thoughtbox.domain.filters import ThoughtFilters, filter_thoughts, newest_first
from thoughtbox.domain.history import build_history_view
from thoughtbox.domain.records import (
    CHANGE_CREATED,
    CHANGE_DELETED,
    CHANGE_EDITED,
    DEFAULT_CATEGORY,
    ROLE_ADMIN,
    ROLE_USER,
    ROLES,
    SETUP_DEPARTMENTS,
    Clinic,
    NewClinic,
    NewThought,
    NewUser,
    SetupResult,
    Thought,
    ThoughtHistory,
    ThoughtHistoryWithUser,
    ThoughtWithAuthor,
    User,
    UserWithClinic,
    apply_clinic_updates,
    apply_thought_updates,
    apply_user_updates,
    history_snapshot,
)
from thoughtbox.repositories.base import DuplicateUserError, Storage

logger = logging.getLogger(__name__)

R = TypeVar("R")

_TABLES = {
    "users": User,
    "clinics": Clinic,
    "thoughts": Thought,
    "thought_history": ThoughtHistory,
}
_DATETIME_FIELDS = {
    "created_at",
    "deleted_at",
    "last_edited_at",
    "read_at",
    "edited_at",
}


def _detached(record: R) -> R:
    return deepcopy(record)


def _encode(record) -> dict:
    data = asdict(record)
    for key in _DATETIME_FIELDS & data.keys():
        if data[key] is not None:
            data[key] = data[key].isoformat()
    return data


def _decode(cls, data: Mapping[str, Any]):
    known = {f.name for f in fields(cls)}
    values = {key: value for key, value in data.items() if key in known}
    for key in _DATETIME_FIELDS & values.keys():
        if values[key]:
            values[key] = datetime.fromisoformat(values[key])
    return cls(**values)


class MemoryStorage(Storage):
    """Arena-style tables guarded by a single lock."""

    def __init__(self, *, snapshot_path: str | Path | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._lock = threading.RLock()
        self._snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._tables: dict[str, dict[int, Any]] = {name: {} for name in _TABLES}
        self._counters: dict[str, int] = {name: 1 for name in _TABLES}
        if self._snapshot_path and self._snapshot_path.exists():
            self.load(self._snapshot_path)

    # -------------------------- snapshots --------------------------
    def _next_id(self, table: str) -> int:
        value = self._counters[table]
        self._counters[table] = value + 1
        return value

    def load(self, path: str | Path) -> None:
        """Replace the current state with the content of a JSON snapshot."""
        with Path(path).open("r", encoding="utf-8") as f:
            raw = json.load(f)
        with self._lock:
            tables: dict[str, dict[int, Any]] = {}
            for name, cls in _TABLES.items():
                rows = raw.get(name) or {}
                tables[name] = {int(key): _decode(cls, row) for key, row in rows.items()}
            counters = raw.get("counters") or {}
            self._tables = tables
            self._counters = {
                name: max(int(counters.get(name) or 1), max(tables[name], default=0) + 1)
                for name in _TABLES
            }
        logger.info("Loaded memory snapshot from %s", path)

    def save(self, path: str | Path | None = None) -> Path:
        """Write the current state as a JSON snapshot and return its path."""
        target = Path(path) if path else self._snapshot_path
        if target is None:
            raise ValueError("No snapshot path configured")
        with self._lock:
            payload = {
                name: {str(key): _encode(row) for key, row in table.items()}
                for name, table in self._tables.items()
            }
            payload["counters"] = dict(self._counters)
        target.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        return target

    def dump(self) -> dict[str, list]:
        """Copies of every record, per table, in id order."""
        with self._lock:
            return {name: [_detached(row) for row in table.values()] for name, table in self._tables.items()}

    @property
    def _users(self) -> dict[int, User]:
        return self._tables["users"]

    @property
    def _clinics(self) -> dict[int, Clinic]:
        return self._tables["clinics"]

    @property
    def _thoughts(self) -> dict[int, Thought]:
        return self._tables["thoughts"]

    @property
    def _history(self) -> dict[int, ThoughtHistory]:
        return self._tables["thought_history"]

    # -------------------------- system --------------------------
    def has_any_users(self) -> bool:
        with self._lock:
            return bool(self._users)

    def setup_first_admin(self, user: NewUser, clinic: NewClinic) -> Optional[SetupResult]:
        with self._lock:
            if self._users:
                logger.warning("First admin setup skipped: users already exist")
                return None
            departments = departments_or_default(clinic.departments or SETUP_DEPARTMENTS)
            created_clinic = self._insert_clinic(replace(clinic, departments=departments))
            admin = self._insert_user(replace(user, role=ROLE_ADMIN, clinic_id=created_clinic.id))
            logger.info("Created first admin %s for clinic %s", admin.id, created_clinic.id)
            return SetupResult(user=_detached(admin), clinic=_detached(created_clinic))

    # -------------------------- users --------------------------
    def _check_unique_user(self, username: str, email: str, *, exclude_id: int | None = None) -> None:
        for other in self._users.values():
            if other.id == exclude_id:
                continue
            if other.username == username:
                raise DuplicateUserError("username", username)
            if other.email == email:
                raise DuplicateUserError("email", email)

    def _insert_user(self, data: NewUser) -> User:
        self._check_unique_user(data.username, data.email)
        user = User(
            id=self._next_id("users"),
            username=data.username,
            email=data.email,
            password=data.password,
            role=data.role if data.role in ROLES else ROLE_USER,
            clinic_id=data.clinic_id or None,
            created_at=self._now(),
        )
        self._users[user.id] = user
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return _detached(user) if user else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return _detached(user)
            return None

    def get_user_with_clinic(self, user_id: int) -> Optional[UserWithClinic]:
        with self._lock:
            user = self._users.get(user_id)
            if not user:
                return None
            clinic = self._clinics.get(user.clinic_id) if user.clinic_id else None
            return UserWithClinic(user=_detached(user), clinic=_detached(clinic) if clinic else None)

    def create_user(self, data: NewUser) -> User:
        with self._lock:
            return _detached(self._insert_user(data))

    def update_user(self, user_id: int, updates: Mapping[str, Any]) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            if not user:
                return None
            updated = apply_user_updates(user, updates)
            self._check_unique_user(updated.username, updated.email, exclude_id=user_id)
            self._users[user_id] = updated
            return _detached(updated)

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            return self._users.pop(user_id, None) is not None

    def get_users_by_clinic(self, clinic_id: int) -> list[User]:
        with self._lock:
            return [_detached(u) for u in self._users.values() if u.clinic_id == clinic_id]

    # -------------------------- clinics --------------------------
    def _insert_clinic(self, data: NewClinic) -> Clinic:
        clinic = Clinic(
            id=self._next_id("clinics"),
            name=data.name,
            url=data.url or None,
            logo_url=data.logo_url or None,
            departments=departments_or_default(data.departments),
            created_at=self._now(),
        )
        self._clinics[clinic.id] = clinic
        return clinic

    def get_clinic(self, clinic_id: int) -> Optional[Clinic]:
        with self._lock:
            clinic = self._clinics.get(clinic_id)
            return _detached(clinic) if clinic else None

    def create_clinic(self, data: NewClinic) -> Clinic:
        with self._lock:
            return _detached(self._insert_clinic(data))

    def update_clinic(self, clinic_id: int, updates: Mapping[str, Any]) -> Optional[Clinic]:
        with self._lock:
            clinic = self._clinics.get(clinic_id)
            if not clinic:
                return None
            updated = apply_clinic_updates(clinic, updates)
            self._clinics[clinic_id] = updated
            return _detached(updated)

    def delete_clinic(self, clinic_id: int) -> bool:
        with self._lock:
            if self._clinics.pop(clinic_id, None) is None:
                return False
            for user_id, user in list(self._users.items()):
                if user.clinic_id == clinic_id:
                    self._users[user_id] = replace(user, clinic_id=None)
            return True

    def get_all_clinics(self) -> list[Clinic]:
        with self._lock:
            return [_detached(c) for c in self._clinics.values()]

    # -------------------------- departments --------------------------
    def list_departments(self, clinic_id: int) -> list[str]:
        with self._lock:
            clinic = self._clinics.get(clinic_id)
            return departments_or_default(clinic.departments if clinic else None)

    def _reassign_department(self, clinic_id: int, old_name: str, new_name: str) -> int:
        moved = 0
        for thought_id, thought in list(self._thoughts.items()):
            if thought.clinic_id == clinic_id and thought.department == old_name:
                self._thoughts[thought_id] = replace(thought, department=new_name)
                moved += 1
        return moved

    def add_department(self, clinic_id: int, name: str) -> bool:
        with self._lock:
            clinic = self._clinics.get(clinic_id)
            if not clinic:
                logger.info("Clinic not found: %s", clinic_id)
                return False
            departments = DepartmentList(clinic.departments)
            try:
                added = departments.add(name)
            except DepartmentError as exc:
                logger.info("Cannot add department to clinic %s: %s", clinic_id, exc)
                return False
            self._clinics[clinic_id] = replace(clinic, departments=departments.names())
            logger.info("Added department %r to clinic %s", added, clinic_id)
            return True

    def update_department(self, clinic_id: int, old_name: str, new_name: str) -> bool:
        with self._lock:
            clinic = self._clinics.get(clinic_id)
            if not clinic:
                logger.info("Clinic not found: %s", clinic_id)
                return False
            departments = DepartmentList(clinic.departments)
            try:
                previous, renamed = departments.rename(old_name, new_name)
            except DepartmentError as exc:
                logger.info("Cannot rename department in clinic %s: %s", clinic_id, exc)
                return False
            self._clinics[clinic_id] = replace(clinic, departments=departments.names())
            moved = self._reassign_department(clinic_id, previous, renamed)
            logger.info("Renamed department %r to %r in clinic %s (%s thoughts)", previous, renamed, clinic_id, moved)
            return True

    def remove_department(self, clinic_id: int, name: str) -> bool:
        with self._lock:
            clinic = self._clinics.get(clinic_id)
            if not clinic:
                logger.info("Clinic not found: %s", clinic_id)
                return False
            departments = DepartmentList(clinic.departments)
            try:
                removed, fallback = departments.remove(name)
            except DepartmentError as exc:
                logger.info("Cannot remove department from clinic %s: %s", clinic_id, exc)
                return False
            self._clinics[clinic_id] = replace(clinic, departments=departments.names())
            moved = self._reassign_department(clinic_id, removed, fallback)
            logger.info("Removed department %r from clinic %s, %s thoughts moved to %r", removed, clinic_id, moved, fallback)
            return True

    # -------------------------- thoughts --------------------------
    def _append_history(self, thought: Thought, editor_id: int, change_type: str) -> None:
        entry = history_snapshot(
            thought,
            entry_id=self._next_id("thought_history"),
            edited_by=editor_id,
            edited_at=self._now(),
            change_type=change_type,
        )
        self._history[entry.id] = entry

    def create_thought(self, data: NewThought, author_id: int) -> Thought:
        with self._lock:
            thought = Thought(
                id=self._next_id("thoughts"),
                clinic_id=data.clinic_id,
                author_id=author_id,
                title=data.title,
                content=data.content,
                category=data.category or DEFAULT_CATEGORY,
                department=data.department or None,
                created_at=self._now(),
            )
            self._thoughts[thought.id] = thought
            self._append_history(thought, author_id, CHANGE_CREATED)
            return _detached(thought)

    def get_thought(self, thought_id: int) -> Optional[Thought]:
        with self._lock:
            thought = self._thoughts.get(thought_id)
            return _detached(thought) if thought else None

    def get_thoughts_by_clinic(
        self,
        clinic_id: int,
        include_deleted: bool = False,
        filters: ThoughtFilters | None = None,
    ) -> list[ThoughtWithAuthor]:
        with self._lock:
            candidates = [t for t in self._thoughts.values() if t.clinic_id == clinic_id]
            selected = filter_thoughts(candidates, include_deleted=include_deleted, filters=filters, tz=self._tz)
            result = []
            for thought in newest_first(selected):
                author = self._users.get(thought.author_id)
                if not author:
                    continue
                deleted_by = self._users.get(thought.deleted_by) if thought.deleted_by else None
                last_edited_by = self._users.get(thought.last_edited_by) if thought.last_edited_by else None
                result.append(
                    ThoughtWithAuthor(
                        thought=_detached(thought),
                        author=_detached(author),
                        deleted_by_user=_detached(deleted_by) if deleted_by else None,
                        last_edited_by_user=_detached(last_edited_by) if last_edited_by else None,
                    )
                )
            return result

    def update_thought(self, thought_id: int, updates: Mapping[str, Any], editor_id: int) -> Optional[Thought]:
        with self._lock:
            thought = self._thoughts.get(thought_id)
            if not thought:
                return None
            updated = replace(
                apply_thought_updates(thought, updates),
                edit_count=(thought.edit_count or 0) + 1,
                last_edited_at=self._now(),
                last_edited_by=editor_id,
            )
            self._thoughts[thought_id] = updated
            self._append_history(updated, editor_id, CHANGE_EDITED)
            return _detached(updated)

    def delete_thought(self, thought_id: int, deleter_id: int) -> bool:
        with self._lock:
            thought = self._thoughts.get(thought_id)
            if not thought:
                return False
            deleted = replace(thought, is_deleted=True, deleted_at=self._now(), deleted_by=deleter_id)
            self._thoughts[thought_id] = deleted
            self._append_history(deleted, deleter_id, CHANGE_DELETED)
            return True

    def mark_thought_as_read(self, thought_id: int) -> bool:
        with self._lock:
            thought = self._thoughts.get(thought_id)
            if not thought:
                return False
            if not thought.is_read:
                self._thoughts[thought_id] = replace(thought, is_read=True, read_at=self._now())
            return True

    def get_thought_history(self, thought_id: int) -> list[ThoughtHistoryWithUser]:
        with self._lock:
            entries = [_detached(e) for e in self._history.values() if e.thought_id == thought_id]
            thought = self._thoughts.get(thought_id)
            view = build_history_view(entries, _detached(thought) if thought else None, self._users)
            return [replace(item, edited_by_user=_detached(item.edited_by_user)) for item in view]

    def get_unread_thoughts_count(self, clinic_id: int) -> int:
        with self._lock:
            return sum(
                1
                for t in self._thoughts.values()
                if t.clinic_id == clinic_id and not t.is_deleted and not t.is_read
            )
