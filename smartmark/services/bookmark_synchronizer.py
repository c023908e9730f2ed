"""Local mirror of the signed-in user's bookmarks.

The synchronizer owns the canonical in-memory list. It is filled by one
full fetch per session and kept current by two sources:

* change events pushed by the remote store, queued and applied one at a
  time by a dedicated worker task;
* the canonical records returned by this session's own add/update/remove
  calls, applied as soon as the call returns.

Every change builds a new tuple and swaps it in with a single assignment,
so readers of ``snapshot`` never see a half-applied change.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from smartmark.core.logging_utils import generate_correlation_id
from smartmark.domain.events.bookmark_events import (
    BookmarkDeleted,
    BookmarkInserted,
    BookmarksReloaded,
    BookmarkUpdated,
)
from smartmark.domain.exceptions import NoSessionError, RemoteNotFoundError, RemoteStoreError

if TYPE_CHECKING:
    from typing import Self

    from smartmark.adapters.remote_store.protocols import (
        ChangeHandler,
        RemoteStoreProtocol,
        Subscription,
    )
    from smartmark.domain.events.bookmark_events import ChangeEvent, DomainEvent
    from smartmark.domain.models.bookmark import Bookmark, BookmarkDraft
    from smartmark.infrastructure.messaging.event_bus import EventBus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncSnapshot:
    """Read-only view handed to the presentation layer."""

    bookmarks: tuple[Bookmark, ...] = ()
    loading: bool = True


def _index_of(bookmarks: tuple[Bookmark, ...], bookmark_id: str) -> int | None:
    for index, bookmark in enumerate(bookmarks):
        if bookmark.id == bookmark_id:
            return index
    return None


def _prepend(bookmarks: tuple[Bookmark, ...], record: Bookmark) -> tuple[Bookmark, ...]:
    if _index_of(bookmarks, record.id) is not None:
        return bookmarks
    return (record, *bookmarks)


def _replace_by_id(bookmarks: tuple[Bookmark, ...], record: Bookmark) -> tuple[Bookmark, ...]:
    index = _index_of(bookmarks, record.id)
    if index is None or bookmarks[index] == record:
        return bookmarks
    return (*bookmarks[:index], record, *bookmarks[index + 1 :])


def _remove_by_id(bookmarks: tuple[Bookmark, ...], bookmark_id: str) -> tuple[Bookmark, ...]:
    index = _index_of(bookmarks, bookmark_id)
    if index is None:
        return bookmarks
    return (*bookmarks[:index], *bookmarks[index + 1 :])


def _newest_first(records: list[Bookmark]) -> tuple[Bookmark, ...]:
    unique: dict[str, Bookmark] = {}
    for record in records:
        unique.setdefault(record.id, record)
    return tuple(sorted(unique.values(), key=lambda record: record.created_at, reverse=True))


class BookmarkSynchronizer:
    """Keeps a local bookmark list consistent with the remote store.

    Usage::

        async with BookmarkSynchronizer(store, event_bus=bus) as sync:
            await sync.initialize(user_id)
            await sync.add(BookmarkDraft(title="Docs", url="https://docs.python.org"))
            print(sync.snapshot.bookmarks)
    """

    def __init__(self, store: RemoteStoreProtocol, *, event_bus: EventBus | None = None) -> None:
        self._store = store
        self._event_bus = event_bus
        self._snapshot = SyncSnapshot()
        self._user_id: str | None = None
        self._session = 0
        self._correlation_id = ""
        self._subscription: Subscription | None = None
        self._queue: asyncio.Queue[tuple[int, ChangeEvent]] | None = None
        self._worker_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> SyncSnapshot:
        return self._snapshot

    @property
    def bookmarks(self) -> tuple[Bookmark, ...]:
        return self._snapshot.bookmarks

    @property
    def loading(self) -> bool:
        return self._snapshot.loading

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, user_id: str | None) -> None:
        """Start a session for ``user_id``, replacing any previous session.

        Without a user the list is emptied and ``loading`` cleared. A failed
        fetch is logged and keeps the previous list.
        """
        await self._release_session()
        session = self._session
        self._user_id = user_id or None

        if not user_id:
            self._swap(bookmarks=(), loading=False)
            logger.info("sync_no_session")
            return

        self._correlation_id = generate_correlation_id()
        self._swap(loading=True)
        self._queue = asyncio.Queue()
        logger.info(
            "sync_session_started",
            extra={"user_id": user_id, "correlation_id": self._correlation_id},
        )

        try:
            await self._open_subscription(user_id, session)
            await self._load(user_id, session)
        except BaseException:
            if session == self._session:
                await self._release_session()
                self._swap(loading=False)
            raise

        if session == self._session:
            # Events buffered while the fetch was in flight are applied from here on.
            self._worker_task = asyncio.create_task(
                self._worker(self._queue, session), name=f"bookmark-sync-{user_id}"
            )

    async def close(self) -> None:
        """Release the subscription and stop applying change events."""
        await self._release_session()

    async def wait_idle(self) -> None:
        """Wait until every change event received so far has been applied."""
        if self._queue is not None and self._worker_task is not None:
            await self._queue.join()

    async def _open_subscription(self, user_id: str, session: int) -> None:
        try:
            subscription = await self._store.subscribe(user_id, self._make_handler(session))
        except RemoteStoreError as exc:
            logger.error(
                "sync_subscribe_failed",
                extra={
                    "user_id": user_id,
                    "correlation_id": self._correlation_id,
                    "error": str(exc),
                },
            )
            return
        if session != self._session:
            await subscription.unsubscribe()
            return
        self._subscription = subscription

    async def _load(self, user_id: str, session: int) -> None:
        try:
            records = await self._store.fetch(user_id)
        except RemoteStoreError as exc:
            logger.error(
                "sync_initial_fetch_failed",
                extra={
                    "user_id": user_id,
                    "correlation_id": self._correlation_id,
                    "error": str(exc),
                },
            )
            if session == self._session:
                self._swap(loading=False)
            return

        if session != self._session:
            logger.debug("sync_stale_fetch_discarded", extra={"user_id": user_id})
            return

        bookmarks = _newest_first(records)
        self._swap(bookmarks=bookmarks, loading=False)
        logger.info(
            "sync_initial_fetch_completed",
            extra={
                "user_id": user_id,
                "correlation_id": self._correlation_id,
                "count": len(bookmarks),
            },
        )
        await self._publish(BookmarksReloaded(user_id=user_id, count=len(bookmarks)))

    async def _release_session(self) -> None:
        self._session += 1
        subscription, self._subscription = self._subscription, None
        worker, self._worker_task = self._worker_task, None
        queue, self._queue = self._queue, None

        if subscription is not None:
            try:
                await subscription.unsubscribe()
            except RemoteStoreError as exc:
                logger.warning(
                    "sync_unsubscribe_failed",
                    extra={"user_id": self._user_id, "error": str(exc)},
                )

        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        # Unblock wait_idle callers joined on the dropped queue.
        while queue is not None and not queue.empty():
            queue.get_nowait()
            queue.task_done()

    # ------------------------------------------------------------------
    # Remote change events
    # ------------------------------------------------------------------

    def _make_handler(self, session: int) -> ChangeHandler:
        async def _on_change(event: ChangeEvent) -> None:
            queue = self._queue
            if session != self._session or queue is None:
                logger.debug(
                    "sync_stale_event_dropped",
                    extra={"event_type": type(event).__name__, "bookmark_id": event.aggregate_id},
                )
                return
            queue.put_nowait((session, event))

        return _on_change

    async def _worker(self, queue: asyncio.Queue[tuple[int, ChangeEvent]], session: int) -> None:
        while True:
            event_session, event = await queue.get()
            try:
                if event_session == session == self._session and self.apply_remote_event(event):
                    await self._publish(event)
            except Exception:
                logger.exception(
                    "sync_event_apply_failed",
                    extra={
                        "event_type": type(event).__name__,
                        "bookmark_id": event.aggregate_id,
                        "correlation_id": self._correlation_id,
                    },
                )
            finally:
                queue.task_done()

    def apply_remote_event(self, event: ChangeEvent) -> bool:
        """Apply one change event to the local list.

        Inserts of a known id, and updates or deletes of an unknown id, are
        no-ops, which makes replaying an event harmless.

        Returns:
            True if the list changed.
        """
        current = self._snapshot.bookmarks
        if isinstance(event, BookmarkInserted):
            updated = _prepend(current, event.record)
        elif isinstance(event, BookmarkUpdated):
            updated = _replace_by_id(current, event.record)
        elif isinstance(event, BookmarkDeleted):
            updated = _remove_by_id(current, event.bookmark_id)
        else:
            raise TypeError(f"Unsupported change event: {type(event).__name__}")

        if updated is current:
            logger.debug(
                "sync_event_noop",
                extra={"event_type": type(event).__name__, "bookmark_id": event.aggregate_id},
            )
            return False
        self._swap(bookmarks=updated)
        return True

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    async def add(self, draft: BookmarkDraft) -> Bookmark:
        """Create a bookmark remotely and prepend the canonical record.

        Raises:
            NoSessionError: If no user is signed in.
            RemoteStoreError: If the store rejects the insert.
        """
        user_id = self._require_user()
        try:
            record = await self._store.insert(user_id, draft)
        except RemoteStoreError as exc:
            self._log_mutation_failure("add", None, exc)
            raise

        if self._user_id != user_id:
            logger.info("sync_result_for_previous_user", extra={"bookmark_id": record.id})
            return record
        updated = _prepend(self._snapshot.bookmarks, record)
        if updated is not self._snapshot.bookmarks:
            self._swap(bookmarks=updated)
            await self._publish(BookmarkInserted(record=record))
        return record

    async def update(self, bookmark_id: str, draft: BookmarkDraft) -> Bookmark:
        """Update a bookmark remotely and replace the local entry in place.

        Raises:
            NoSessionError: If no user is signed in.
            RemoteStoreError: If the store rejects the update.
        """
        user_id = self._require_user()
        try:
            record = await self._store.update(bookmark_id, draft)
        except RemoteStoreError as exc:
            self._log_mutation_failure("update", bookmark_id, exc)
            raise

        if self._user_id != user_id:
            logger.info("sync_result_for_previous_user", extra={"bookmark_id": record.id})
            return record
        updated = _replace_by_id(self._snapshot.bookmarks, record)
        if updated is not self._snapshot.bookmarks:
            self._swap(bookmarks=updated)
            await self._publish(BookmarkUpdated(record=record))
        return record

    async def remove(self, bookmark_id: str) -> None:
        """Delete a bookmark remotely and drop the local entry.

        Removing an id that is already gone, locally or remotely, is a no-op.

        Raises:
            NoSessionError: If no user is signed in.
            RemoteStoreError: If the store rejects the delete.
        """
        user_id = self._require_user()
        try:
            await self._store.delete(bookmark_id)
        except RemoteNotFoundError:
            logger.debug("sync_remove_already_gone", extra={"bookmark_id": bookmark_id})
        except RemoteStoreError as exc:
            self._log_mutation_failure("remove", bookmark_id, exc)
            raise

        if self._user_id != user_id:
            return
        updated = _remove_by_id(self._snapshot.bookmarks, bookmark_id)
        if updated is not self._snapshot.bookmarks:
            self._swap(bookmarks=updated)
            await self._publish(BookmarkDeleted(bookmark_id=bookmark_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_user(self) -> str:
        if self._user_id is None:
            raise NoSessionError("No signed-in user")
        return self._user_id

    def _swap(self, **changes: object) -> None:
        self._snapshot = dataclasses.replace(self._snapshot, **changes)

    async def _publish(self, event: DomainEvent) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event)

    def _log_mutation_failure(
        self, operation: str, bookmark_id: str | None, exc: RemoteStoreError
    ) -> None:
        logger.error(
            "sync_mutation_failed",
            extra={
                "operation": operation,
                "bookmark_id": bookmark_id,
                "user_id": self._user_id,
                "correlation_id": self._correlation_id,
                "status_code": exc.status_code,
                "error": str(exc),
            },
        )
