"""Read-side helpers for the thought audit trail."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from .filters import ensure_utc
from .records import (
    CHANGE_CREATED,
    Thought,
    ThoughtHistory,
    ThoughtHistoryWithUser,
    User,
    history_snapshot,
    unknown_user,
)

SYNTHETIC_ENTRY_ID = 0

_FLOOR = datetime.min.replace(tzinfo=timezone.utc)


def synthesize_created_entry(thought: Thought) -> ThoughtHistory:
    """Stand-in `created` entry for thoughts written before history existed."""
    return history_snapshot(
        thought,
        entry_id=SYNTHETIC_ENTRY_ID,
        edited_by=thought.author_id,
        edited_at=thought.created_at,
        change_type=CHANGE_CREATED,
    )


def build_history_view(
    entries: Iterable[ThoughtHistory],
    thought: Optional[Thought],
    users: Mapping[int, User],
) -> list[ThoughtHistoryWithUser]:
    ordered = sorted(entries, key=lambda e: (ensure_utc(e.edited_at) or _FLOOR, e.id), reverse=True)
    if not ordered and thought is not None:
        ordered = [synthesize_created_entry(thought)]
    return [
        ThoughtHistoryWithUser(entry=entry, edited_by_user=users.get(entry.edited_by) or unknown_user(entry.edited_by))
        for entry in ordered
    ]
