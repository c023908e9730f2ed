"""Aggregations behind the dashboard and analytics views.

All functions are pure: they read a bookmark snapshot and return freshly
built values, never touching the synchronizer's list.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from smartmark.config.analytics import DEFAULT_CATEGORY_PALETTE
from smartmark.core.time_utils import local_now

if TYPE_CHECKING:
    from collections.abc import Sequence

    from smartmark.config.analytics import AnalyticsConfig
    from smartmark.domain.models.bookmark import Bookmark

DEFAULT_RECENT_WINDOW_DAYS = 7
DEFAULT_ACTIVITY_DAYS = 7
DEFAULT_RECENT_LIST_LIMIT = 5


@dataclass(frozen=True)
class CategoryStats:
    name: str
    count: int
    percentage: float
    color: str


@dataclass(frozen=True)
class DailyStats:
    date: date
    count: int

    @property
    def label(self) -> str:
        return self.date.isoformat()


@dataclass(frozen=True)
class DashboardStats:
    total: int
    recent: int
    categories: int


@dataclass(frozen=True)
class AnalyticsReport:
    total: int
    recent: int
    categories: list[CategoryStats] = field(default_factory=list)
    recent_bookmarks: list[Bookmark] = field(default_factory=list)
    daily_activity: list[DailyStats] = field(default_factory=list)


def _resolve_now(now: datetime | None) -> datetime:
    if now is None:
        return local_now()
    if now.tzinfo is None:
        # Naive values are wall-clock time in the local zone.
        return now.astimezone()
    return now


def _require_non_negative(value: int, name: str) -> None:
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ValueError(msg)


def category_names(bookmarks: Sequence[Bookmark]) -> list[str]:
    """Distinct non-empty categories in order of first appearance."""
    seen: dict[str, None] = {}
    for bookmark in bookmarks:
        if bookmark.category:
            seen.setdefault(bookmark.category, None)
    return list(seen)


def category_histogram(
    bookmarks: Sequence[Bookmark],
    palette: Sequence[str] = DEFAULT_CATEGORY_PALETTE,
) -> list[CategoryStats]:
    """Count bookmarks per category.

    Groups keep first-appearance order and take ``palette`` colors
    cyclically in that order. The percentage denominator is the full list
    length, uncategorized bookmarks included, so percentages sum to less
    than 100 when some bookmarks have no category.
    """
    if not palette:
        raise ValueError("palette must contain at least one color")
    counts = Counter(bookmark.category for bookmark in bookmarks if bookmark.category)
    total = len(bookmarks)
    return [
        CategoryStats(
            name=name,
            count=counts[name],
            percentage=100.0 * counts[name] / total,
            color=palette[index % len(palette)],
        )
        for index, name in enumerate(category_names(bookmarks))
    ]


def recent_count(
    bookmarks: Sequence[Bookmark],
    window_days: int = DEFAULT_RECENT_WINDOW_DAYS,
    now: datetime | None = None,
) -> int:
    """Number of bookmarks created strictly within the last ``window_days`` days."""
    _require_non_negative(window_days, "window_days")
    cutoff = _resolve_now(now) - timedelta(days=window_days)
    return sum(1 for bookmark in bookmarks if bookmark.created_at > cutoff)


def daily_activity(
    bookmarks: Sequence[Bookmark],
    days: int = DEFAULT_ACTIVITY_DAYS,
    now: datetime | None = None,
) -> list[DailyStats]:
    """Bookmarks created per calendar day, oldest day first, ending today.

    Days are calendar dates in the zone of ``now`` (the local zone when
    omitted), not rolling 24-hour windows.
    """
    _require_non_negative(days, "days")
    current = _resolve_now(now)
    zone = current.tzinfo
    today = current.date()
    per_day = Counter(bookmark.created_at.astimezone(zone).date() for bookmark in bookmarks)
    return [
        DailyStats(date=day, count=per_day.get(day, 0))
        for day in (today - timedelta(days=offset) for offset in range(days - 1, -1, -1))
    ]


def recent_bookmarks(
    bookmarks: Sequence[Bookmark], limit: int = DEFAULT_RECENT_LIST_LIMIT
) -> list[Bookmark]:
    """The first ``limit`` bookmarks of an already newest-first list."""
    _require_non_negative(limit, "limit")
    return list(bookmarks[:limit])


def dashboard_stats(
    bookmarks: Sequence[Bookmark],
    now: datetime | None = None,
    window_days: int = DEFAULT_RECENT_WINDOW_DAYS,
) -> DashboardStats:
    return DashboardStats(
        total=len(bookmarks),
        recent=recent_count(bookmarks, window_days, now),
        categories=len(category_names(bookmarks)),
    )


def build_analytics(
    bookmarks: Sequence[Bookmark],
    now: datetime | None = None,
    config: AnalyticsConfig | None = None,
) -> AnalyticsReport:
    """Everything the analytics page shows, computed from one snapshot."""
    current = _resolve_now(now)
    if config is None:
        window_days = DEFAULT_RECENT_WINDOW_DAYS
        activity_days = DEFAULT_ACTIVITY_DAYS
        list_limit = DEFAULT_RECENT_LIST_LIMIT
        palette: Sequence[str] = DEFAULT_CATEGORY_PALETTE
    else:
        window_days = config.recent_window_days
        activity_days = config.daily_activity_days
        list_limit = config.recent_list_limit
        palette = config.category_palette

    return AnalyticsReport(
        total=len(bookmarks),
        recent=recent_count(bookmarks, window_days, current),
        categories=category_histogram(bookmarks, palette),
        recent_bookmarks=recent_bookmarks(bookmarks, list_limit),
        daily_activity=daily_activity(bookmarks, activity_days, current),
    )
