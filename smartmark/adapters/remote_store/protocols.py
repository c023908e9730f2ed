"""Protocol definitions (ports) for the remote bookmark store.

The synchronizer only talks to these Protocols, so the hosted backend and
the in-memory test double are interchangeable.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from smartmark.domain.events.bookmark_events import ChangeEvent
    from smartmark.domain.models.bookmark import Bookmark, BookmarkDraft

ChangeHandler = Callable[["ChangeEvent"], Awaitable[None]]


@runtime_checkable
class Subscription(Protocol):
    @property
    def active(self) -> bool: ...

    async def unsubscribe(self) -> None: ...


@runtime_checkable
class RemoteStoreProtocol(Protocol):
    async def fetch(self, user_id: str, *, category: str | None = None) -> list[Bookmark]: ...

    async def insert(self, user_id: str, draft: BookmarkDraft) -> Bookmark: ...

    async def update(self, bookmark_id: str, draft: BookmarkDraft) -> Bookmark: ...

    async def delete(self, bookmark_id: str) -> None: ...

    async def subscribe(self, user_id: str, handler: ChangeHandler) -> Subscription: ...
