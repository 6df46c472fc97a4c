"""Department list rules shared by the storage backends."""
from __future__ import annotations

from typing import Iterable

DEFAULT_DEPARTMENT = "General"


class DepartmentError(Exception):
    """Raised when a department operation would break the list rules."""

    def __init__(self, reason: str, name: str = ""):
        super().__init__(f"{reason}: {name}" if name else reason)
        self.reason = reason
        self.name = name


def department_key(name: str | None) -> str:
    return (name or "").strip().lower()


class DepartmentList:
    """
    Ordered department names with a case-insensitive index.

    Names keep the casing they were stored with; lookups go through the
    lower-cased key. Order matters: the first name is where thoughts land when
    their department is removed.
    """

    def __init__(self, names: Iterable[str] | None = None) -> None:
        self._names: list[str] = []
        self._index: dict[str, int] = {}
        for name in names or ():
            trimmed = (name or "").strip()
            if trimmed and department_key(trimmed) not in self._index:
                self._index[department_key(trimmed)] = len(self._names)
                self._names.append(trimmed)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and department_key(name) in self._index

    def names(self) -> list[str]:
        return list(self._names)

    def find(self, name: str | None) -> int | None:
        return self._index.get(department_key(name))

    def _reindex(self) -> None:
        self._index = {department_key(name): idx for idx, name in enumerate(self._names)}

    def add(self, name: str | None) -> str:
        trimmed = (name or "").strip()
        if not trimmed:
            raise DepartmentError("empty_name")
        if trimmed in self:
            raise DepartmentError("already_exists", trimmed)
        self._index[department_key(trimmed)] = len(self._names)
        self._names.append(trimmed)
        return trimmed

    def rename(self, old_name: str | None, new_name: str | None) -> tuple[str, str]:
        """Rename in place. Returns (stored old name, new name)."""
        old_trimmed = (old_name or "").strip()
        new_trimmed = (new_name or "").strip()
        if not old_trimmed or not new_trimmed:
            raise DepartmentError("empty_name")
        position = self.find(old_trimmed)
        if position is None:
            raise DepartmentError("not_found", old_trimmed)
        clash = self.find(new_trimmed)
        if clash is not None and clash != position:
            raise DepartmentError("already_exists", new_trimmed)
        previous = self._names[position]
        self._names[position] = new_trimmed
        self._reindex()
        return previous, new_trimmed

    def remove(self, name: str | None) -> tuple[str, str]:
        """Remove a department. Returns (stored removed name, fallback name)."""
        trimmed = (name or "").strip()
        if not trimmed:
            raise DepartmentError("empty_name")
        position = self.find(trimmed)
        if position is None:
            raise DepartmentError("not_found", trimmed)
        if len(self._names) <= 1:
            raise DepartmentError("last_department", trimmed)
        removed = self._names.pop(position)
        self._reindex()
        fallback = self._names[0] if self._names else DEFAULT_DEPARTMENT
        return removed, fallback


def normalize_departments(names: Iterable[str] | None) -> list[str]:
    """Trim names and drop empty or case-insensitive duplicates, keeping order."""
    return DepartmentList(names).names()


def departments_or_default(names: Iterable[str] | None) -> list[str]:
    return normalize_departments(names) or [DEFAULT_DEPARTMENT]
