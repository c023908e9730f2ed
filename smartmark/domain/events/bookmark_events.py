"""Domain events for bookmark collection changes.

The same event types describe a row change pushed by the remote store's
change feed and a change the synchronizer applied to its local mirror.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from smartmark.core.time_utils import utc_now
from smartmark.domain.models.bookmark import Bookmark


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base class for all domain events."""

    occurred_at: datetime = field(default_factory=utc_now)
    aggregate_id: str | None = None

    def __post_init__(self) -> None:
        """Validate event data after initialization."""
        if not isinstance(self.occurred_at, datetime):
            raise TypeError("occurred_at must be a datetime")


@dataclass(frozen=True, kw_only=True)
class BookmarkInserted(DomainEvent):
    """A bookmark row was created."""

    record: Bookmark

    def __post_init__(self) -> None:
        super().__post_init__()
        if not isinstance(self.record, Bookmark):
            raise TypeError("record must be a Bookmark")
        object.__setattr__(self, "aggregate_id", self.record.id)


@dataclass(frozen=True, kw_only=True)
class BookmarkUpdated(DomainEvent):
    """A bookmark row was modified; ``record`` is the new canonical version."""

    record: Bookmark

    def __post_init__(self) -> None:
        super().__post_init__()
        if not isinstance(self.record, Bookmark):
            raise TypeError("record must be a Bookmark")
        object.__setattr__(self, "aggregate_id", self.record.id)


@dataclass(frozen=True, kw_only=True)
class BookmarkDeleted(DomainEvent):
    """A bookmark row was removed."""

    bookmark_id: str

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.bookmark_id:
            raise ValueError("bookmark_id must not be empty")
        object.__setattr__(self, "aggregate_id", self.bookmark_id)


@dataclass(frozen=True, kw_only=True)
class BookmarksReloaded(DomainEvent):
    """The local mirror was replaced by a full fetch."""

    user_id: str
    count: int


ChangeEvent = BookmarkInserted | BookmarkUpdated | BookmarkDeleted
