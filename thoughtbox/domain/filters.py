"""Thought listing filters and the date helpers behind them."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from typing import Iterable, Optional, Union
import logging

from .records import Thought

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str, None]

END_OF_DAY = time(23, 59, 59, 999999)


@dataclass
class ThoughtFilters:
    """Optional, independently combinable restrictions for clinic listings."""

    start_date: DateLike = None
    end_date: DateLike = None
    user_id: Optional[int] = None
    department: Optional[str] = None
    include_read: bool = True


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return an aware UTC datetime; naive values are taken as UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _local_datetime(value: DateLike, tz: tzinfo) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            logger.warning("Ignoring unparseable date filter %r", value)
            return None
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def date_bounds(filters: ThoughtFilters | None, tz: tzinfo) -> tuple[datetime | None, datetime | None]:
    """
    Resolve start/end filters to inclusive UTC instants.

    Plain dates start at local midnight; the end bound always stretches to the
    last microsecond of its local calendar day.
    """
    if filters is None:
        return None, None
    start = _local_datetime(filters.start_date, tz)
    end = _local_datetime(filters.end_date, tz)
    if end is not None:
        end = datetime.combine(end.date(), END_OF_DAY, tzinfo=tz)
    return ensure_utc(start), ensure_utc(end)


def filter_thoughts(
    thoughts: Iterable[Thought],
    *,
    include_deleted: bool,
    filters: ThoughtFilters | None,
    tz: tzinfo,
) -> list[Thought]:
    """Apply the listing pipeline: deleted, date range, author, department, read."""
    selected = [t for t in thoughts if include_deleted or not t.is_deleted]
    if filters is None:
        return selected

    start, end = date_bounds(filters, tz)
    if start is not None:
        selected = [t for t in selected if t.created_at is not None and ensure_utc(t.created_at) >= start]
    if end is not None:
        selected = [t for t in selected if t.created_at is not None and ensure_utc(t.created_at) <= end]
    if filters.user_id:
        selected = [t for t in selected if t.author_id == filters.user_id]
    if filters.department:
        selected = [t for t in selected if t.department == filters.department]
    if filters.include_read is False:
        selected = [t for t in selected if not t.is_read]
    return selected


def newest_first(thoughts: Iterable[Thought]) -> list[Thought]:
    """Sort by created_at descending; equal timestamps keep their input order."""
    floor = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(thoughts, key=lambda t: ensure_utc(t.created_at) or floor, reverse=True)
