"""Text search and category filtering over a bookmark snapshot."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from smartmark.domain.models.bookmark import Bookmark

# Selector value meaning "no category filter".
ALL_CATEGORIES = "all"


def _matches(bookmark: Bookmark, needle: str) -> bool:
    return (
        needle in bookmark.title.casefold()
        or needle in bookmark.url.casefold()
        or needle in (bookmark.description or "").casefold()
    )


def search(bookmarks: Sequence[Bookmark], query: str | None) -> list[Bookmark]:
    """Case-insensitive substring match on title, url and description.

    An empty or missing query returns every bookmark in the original order.
    """
    if not query:
        return list(bookmarks)
    needle = query.casefold()
    return [bookmark for bookmark in bookmarks if _matches(bookmark, needle)]


def filter_by_category(bookmarks: Sequence[Bookmark], category: str | None) -> list[Bookmark]:
    """Exact, case-sensitive category match; ``None`` or ``"all"`` keeps everything."""
    if category is None or category == ALL_CATEGORIES:
        return list(bookmarks)
    return [bookmark for bookmark in bookmarks if bookmark.category == category]


def filter_bookmarks(
    bookmarks: Sequence[Bookmark],
    query: str | None = None,
    category: str | None = None,
) -> list[Bookmark]:
    """Bookmarks matching both the search query and the category selector."""
    return search(filter_by_category(bookmarks, category), query)


def category_options(categories: Iterable[str]) -> list[str]:
    """Selector entries: the ``"all"`` sentinel followed by each category."""
    return [ALL_CATEGORIES, *categories]


def category_slug(name: str) -> str:
    """Lowercase path segment used in category links."""
    return name.strip().lower()


def resolve_category_slug(slug: str, known_categories: Iterable[str]) -> str:
    """Map a category link segment back to the stored category name.

    Known names are matched case-insensitively. Unknown slugs are
    capitalized, which is how categories are usually entered.
    """
    wanted = slug.strip().lower()
    for name in known_categories:
        if name.lower() == wanted:
            return name
    return wanted[:1].upper() + wanted[1:]
