"""In-process remote store.

Behaves like the hosted store from the synchronizer's point of view: the
store assigns ids and timestamps, scopes rows by user, and pushes change
events to subscribers of the row's owner. Used by the test-suite and for
running the core without a backend.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from smartmark.core.time_utils import utc_now
from smartmark.domain.events.bookmark_events import (
    BookmarkDeleted,
    BookmarkInserted,
    BookmarkUpdated,
)
from smartmark.domain.exceptions import RemoteNotFoundError, RemoteStoreError
from smartmark.domain.models.bookmark import Bookmark

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from smartmark.adapters.remote_store.protocols import ChangeHandler
    from smartmark.domain.events.bookmark_events import ChangeEvent
    from smartmark.domain.models.bookmark import BookmarkDraft

logger = logging.getLogger(__name__)

OPERATIONS = frozenset({"fetch", "insert", "update", "delete", "subscribe"})


class InMemorySubscription:
    def __init__(self, store: InMemoryRemoteStore, user_id: str, handler: ChangeHandler) -> None:
        self._store = store
        self.user_id = user_id
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store._detach(self)


class InMemoryRemoteStore:
    """Dictionary-backed implementation of ``RemoteStoreProtocol``."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] | None = None,
        emit_events: bool = True,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.emit_events = emit_events
        self._rows: dict[str, Bookmark] = {}
        self._subscriptions: list[InMemorySubscription] = []
        self._failures: dict[str, RemoteStoreError] = {}

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_next(self, operation: str, error: RemoteStoreError | None = None) -> None:
        """Make the next call to ``operation`` raise ``error``."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        self._failures[operation] = error or RemoteStoreError(
            f"{operation} failed", {"operation": operation}
        )

    def seed(self, *records: Bookmark) -> None:
        """Load rows directly, without emitting change events."""
        for record in records:
            self._rows[record.id] = record

    def rows(self) -> list[Bookmark]:
        return list(self._rows.values())

    def subscriber_count(self, user_id: str | None = None) -> int:
        if user_id is None:
            return len(self._subscriptions)
        return sum(1 for sub in self._subscriptions if sub.user_id == user_id)

    async def push(self, user_id: str, event: ChangeEvent) -> None:
        """Deliver an arbitrary change event to ``user_id``'s subscribers."""
        for subscription in list(self._subscriptions):
            if subscription.user_id == user_id and subscription.active:
                await subscription.handler(event)

    # ------------------------------------------------------------------
    # RemoteStoreProtocol
    # ------------------------------------------------------------------

    async def fetch(self, user_id: str, *, category: str | None = None) -> list[Bookmark]:
        self._raise_if_failing("fetch")
        rows = [
            row
            for row in self._rows.values()
            if row.user_id == user_id and (category is None or row.category == category)
        ]
        return sorted(rows, key=lambda row: row.created_at, reverse=True)

    async def insert(self, user_id: str, draft: BookmarkDraft) -> Bookmark:
        self._raise_if_failing("insert")
        record = Bookmark(
            id=self._id_factory(),
            created_at=self._clock(),
            user_id=user_id,
            **draft.model_dump(),
        )
        self._rows[record.id] = record
        await self._notify(user_id, BookmarkInserted(record=record))
        return record

    async def update(self, bookmark_id: str, draft: BookmarkDraft) -> Bookmark:
        self._raise_if_failing("update")
        current = self._rows.get(bookmark_id)
        if current is None:
            raise RemoteNotFoundError(
                f"Bookmark {bookmark_id} not found", {"bookmark_id": bookmark_id}, status_code=404
            )
        record = current.with_draft(draft)
        self._rows[bookmark_id] = record
        await self._notify(record.user_id, BookmarkUpdated(record=record))
        return record

    async def delete(self, bookmark_id: str) -> None:
        self._raise_if_failing("delete")
        removed = self._rows.pop(bookmark_id, None)
        if removed is not None:
            await self._notify(removed.user_id, BookmarkDeleted(bookmark_id=bookmark_id))

    async def subscribe(self, user_id: str, handler: ChangeHandler) -> InMemorySubscription:
        self._raise_if_failing("subscribe")
        subscription = InMemorySubscription(self, user_id, handler)
        self._subscriptions.append(subscription)
        logger.debug("in_memory_store_subscribed", extra={"user_id": user_id})
        return subscription

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _detach(self, subscription: InMemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _raise_if_failing(self, operation: str) -> None:
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    async def _notify(self, user_id: str | None, event: ChangeEvent) -> None:
        if not self.emit_events or user_id is None:
            return
        await self.push(user_id, event)
