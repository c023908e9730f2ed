from smartmark.domain.events.bookmark_events import (
    BookmarkDeleted,
    BookmarkInserted,
    BookmarksReloaded,
    BookmarkUpdated,
    ChangeEvent,
    DomainEvent,
)

__all__ = [
    "BookmarkDeleted",
    "BookmarkInserted",
    "BookmarkUpdated",
    "BookmarksReloaded",
    "ChangeEvent",
    "DomainEvent",
]
