"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from smartmark.domain.models.bookmark import Bookmark, BookmarkDraft

if TYPE_CHECKING:
    from collections.abc import Callable

BASE_TIME = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


def make_bookmark(
    bookmark_id: str = "b1",
    *,
    title: str | None = None,
    url: str | None = None,
    description: str | None = None,
    category: str | None = None,
    created_at: datetime | None = None,
    user_id: str | None = "user-1",
) -> Bookmark:
    return Bookmark(
        id=bookmark_id,
        title=title or f"Bookmark {bookmark_id}",
        url=url or f"https://example.com/{bookmark_id}",
        description=description,
        category=category,
        created_at=created_at or BASE_TIME,
        user_id=user_id,
    )


def make_draft(title: str = "Python docs", **fields: str | None) -> BookmarkDraft:
    url = fields.pop("url", None) or "https://docs.python.org"
    return BookmarkDraft(title=title, url=url, **fields)


def make_clock(
    start: datetime = BASE_TIME, step: timedelta = timedelta(minutes=1)
) -> Callable[[], datetime]:
    """Clock returning ``start`` then advancing by ``step`` on every call."""
    ticks = {"now": start - step}

    def _clock() -> datetime:
        ticks["now"] += step
        return ticks["now"]

    return _clock


@pytest.fixture
def bookmark_factory() -> Callable[..., Bookmark]:
    return make_bookmark
