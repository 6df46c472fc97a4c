"""Storage interface shared by the in-memory and SQL backends."""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from thoughtbox.core.config import get_settings
from thoughtbox.domain.filters import ThoughtFilters, ensure_utc
from thoughtbox.domain.records import (
    Clinic,
    NewClinic,
    NewThought,
    NewUser,
    SetupResult,
    Thought,
    ThoughtHistoryWithUser,
    ThoughtWithAuthor,
    User,
    UserWithClinic,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class StorageError(Exception):
    """Base class for storage failures callers are expected to handle."""


class DuplicateUserError(StorageError):
    """Raised when a username or email is already registered."""

    def __init__(self, field: str, value: str):
        super().__init__(f"{field} already registered: {value}")
        self.field = field
        self.value = value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_timezone(name: str | None = None) -> tzinfo:
    zone = name or get_settings().local_timezone
    try:
        return ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown LOCAL_TIMEZONE %r, falling back to UTC", zone)
        return timezone.utc


class Storage(ABC):
    """
    Persistence gateway for users, clinics, thoughts and their history.

    Missing records are reported as None, False or an empty list and never
    raised. Department operations answer False when a rule would be broken
    (duplicate name, unknown name, last remaining department).
    """

    def __init__(self, *, clock: Clock | None = None, tz: tzinfo | None = None) -> None:
        self._clock = clock or utcnow
        self._tz = tz or local_timezone()

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    # -------------------------- system --------------------------
    @abstractmethod
    def has_any_users(self) -> bool: ...

    @abstractmethod
    def setup_first_admin(self, user: NewUser, clinic: NewClinic) -> Optional[SetupResult]: ...

    # -------------------------- users --------------------------
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_with_clinic(self, user_id: int) -> Optional[UserWithClinic]: ...

    @abstractmethod
    def create_user(self, data: NewUser) -> User: ...

    @abstractmethod
    def update_user(self, user_id: int, updates: Mapping[str, Any]) -> Optional[User]: ...

    @abstractmethod
    def delete_user(self, user_id: int) -> bool: ...

    @abstractmethod
    def get_users_by_clinic(self, clinic_id: int) -> list[User]: ...

    # -------------------------- clinics --------------------------
    @abstractmethod
    def get_clinic(self, clinic_id: int) -> Optional[Clinic]: ...

    @abstractmethod
    def create_clinic(self, data: NewClinic) -> Clinic: ...

    @abstractmethod
    def update_clinic(self, clinic_id: int, updates: Mapping[str, Any]) -> Optional[Clinic]: ...

    @abstractmethod
    def delete_clinic(self, clinic_id: int) -> bool: ...

    @abstractmethod
    def get_all_clinics(self) -> list[Clinic]: ...

    # -------------------------- departments --------------------------
    @abstractmethod
    def list_departments(self, clinic_id: int) -> list[str]: ...

    @abstractmethod
    def add_department(self, clinic_id: int, name: str) -> bool: ...

    @abstractmethod
    def update_department(self, clinic_id: int, old_name: str, new_name: str) -> bool: ...

    @abstractmethod
    def remove_department(self, clinic_id: int, name: str) -> bool: ...

    # -------------------------- thoughts --------------------------
    @abstractmethod
    def create_thought(self, data: NewThought, author_id: int) -> Thought: ...

    @abstractmethod
    def get_thought(self, thought_id: int) -> Optional[Thought]: ...

    @abstractmethod
    def get_thoughts_by_clinic(
        self,
        clinic_id: int,
        include_deleted: bool = False,
        filters: ThoughtFilters | None = None,
    ) -> list[ThoughtWithAuthor]: ...

    @abstractmethod
    def update_thought(self, thought_id: int, updates: Mapping[str, Any], editor_id: int) -> Optional[Thought]: ...

    @abstractmethod
    def delete_thought(self, thought_id: int, deleter_id: int) -> bool: ...

    @abstractmethod
    def mark_thought_as_read(self, thought_id: int) -> bool: ...

    @abstractmethod
    def get_thought_history(self, thought_id: int) -> list[ThoughtHistoryWithUser]: ...

    @abstractmethod
    def get_unread_thoughts_count(self, clinic_id: int) -> int: ...
