"""Record types returned by every storage backend."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional

from .departments import DEFAULT_DEPARTMENT, normalize_departments

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = {ROLE_ADMIN, ROLE_USER}

DEFAULT_CATEGORY = "general"
SETUP_DEPARTMENTS = (DEFAULT_DEPARTMENT, "Administration")

CHANGE_CREATED = "created"
CHANGE_EDITED = "edited"
CHANGE_DELETED = "deleted"

USER_UPDATABLE_FIELDS = ("username", "email", "password", "role", "clinic_id")
CLINIC_UPDATABLE_FIELDS = ("name", "url", "logo_url", "departments")
THOUGHT_UPDATABLE_FIELDS = ("title", "content", "category", "department")


@dataclass
class User:
    id: int
    username: str
    email: str
    password: str
    role: str = ROLE_USER
    clinic_id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class Clinic:
    id: int
    name: str
    url: Optional[str] = None
    logo_url: Optional[str] = None
    departments: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass
class Thought:
    id: int
    clinic_id: int
    author_id: int
    title: str
    content: str
    category: str = DEFAULT_CATEGORY
    department: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[int] = None
    edit_count: int = 0
    last_edited_at: Optional[datetime] = None
    last_edited_by: Optional[int] = None
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class ThoughtHistory:
    id: int
    thought_id: int
    title: Optional[str]
    content: Optional[str]
    category: Optional[str]
    department: Optional[str]
    edited_by: int
    edited_at: Optional[datetime]
    change_type: str


# ------------------------------ input shapes ------------------------------
@dataclass
class NewUser:
    username: str
    email: str
    password: str
    role: str = ROLE_USER
    clinic_id: Optional[int] = None


@dataclass
class NewClinic:
    name: str
    url: Optional[str] = None
    logo_url: Optional[str] = None
    departments: Optional[list[str]] = None


@dataclass
class NewThought:
    clinic_id: int
    title: str
    content: str
    category: Optional[str] = None
    department: Optional[str] = None


# ------------------------------ joined views ------------------------------
@dataclass
class UserWithClinic:
    user: User
    clinic: Optional[Clinic]


@dataclass
class ThoughtWithAuthor:
    thought: Thought
    author: User
    deleted_by_user: Optional[User] = None
    last_edited_by_user: Optional[User] = None


@dataclass
class ThoughtHistoryWithUser:
    entry: ThoughtHistory
    edited_by_user: User


@dataclass
class SetupResult:
    user: User
    clinic: Clinic


# ------------------------------ helpers ------------------------------
def unknown_user(user_id: int) -> User:
    """
    Placeholder for a user id that no longer resolves.

    The record is not authoritative: it only keeps historical entries viewable
    after the referenced account was deleted.
    """
    return User(
        id=user_id,
        username=f"Unknown User {user_id}",
        email="unknown@example.com",
        password="",
        role=ROLE_USER,
        clinic_id=None,
        created_at=None,
    )


def pick_updates(updates: Mapping[str, Any] | None, allowed: tuple[str, ...]) -> dict[str, Any]:
    """Keep only the known updatable keys of a partial update."""
    if not updates:
        return {}
    return {key: updates[key] for key in allowed if key in updates}


def apply_user_updates(user: User, updates: Mapping[str, Any] | None) -> User:
    values = pick_updates(updates, USER_UPDATABLE_FIELDS)
    if "role" in values and values["role"] not in ROLES:
        values.pop("role")
    return replace(user, **values)


def apply_clinic_updates(clinic: Clinic, updates: Mapping[str, Any] | None) -> Clinic:
    values = pick_updates(updates, CLINIC_UPDATABLE_FIELDS)
    if "departments" in values:
        departments = normalize_departments(values["departments"])
        if departments:
            values["departments"] = departments
        else:
            values.pop("departments")
    return replace(clinic, **values)


def apply_thought_updates(thought: Thought, updates: Mapping[str, Any] | None) -> Thought:
    return replace(thought, **pick_updates(updates, THOUGHT_UPDATABLE_FIELDS))


def history_snapshot(thought: Thought, *, entry_id: int, edited_by: int, edited_at: datetime | None, change_type: str) -> ThoughtHistory:
    """Build a history entry carrying the thought's current content fields."""
    return ThoughtHistory(
        id=entry_id,
        thought_id=thought.id,
        title=thought.title,
        content=thought.content,
        category=thought.category,
        department=thought.department,
        edited_by=edited_by,
        edited_at=edited_at,
        change_type=change_type,
    )
