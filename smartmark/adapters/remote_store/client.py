"""REST client for the hosted bookmark store."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from smartmark.adapters.remote_store.models import (
    StoreErrorBody,
    decode_record,
    decode_records,
    parse_change_line,
)
from smartmark.config._validators import _ensure_api_key
from smartmark.domain.exceptions import (
    RecordValidationError,
    RemoteAuthError,
    RemoteNotFoundError,
    RemoteStoreError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from contextlib import AbstractAsyncContextManager
    from typing import Self

    from smartmark.adapters.remote_store.protocols import ChangeHandler
    from smartmark.config.integrations import RemoteStoreConfig
    from smartmark.domain.models.bookmark import Bookmark, BookmarkDraft

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

DEFAULT_MAX_RETRIES = 0
DEFAULT_BASE_DELAY = 0.5  # seconds
DEFAULT_MAX_DELAY = 10.0  # seconds
DEFAULT_JITTER = 0.1  # 10% jitter

REST_PREFIX = "/rest/v1"
CHANGES_PATH = "/realtime/v1/changes"


def _is_retryable_error(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


def _calculate_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """Exponential backoff with random jitter (attempt is 0-indexed)."""
    delay = min(base_delay * (2**attempt), max_delay)
    jitter_amount = delay * jitter * random.random()
    return delay + jitter_amount


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    operation_name: str = "operation",
) -> T:
    """Execute an async function, retrying transient HTTP failures.

    Non-retryable errors and the last retryable error are re-raised as-is.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not _is_retryable_error(e) or attempt >= max_retries:
                raise

            delay = _calculate_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "remote_store_retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 2),
                    "error": str(e),
                },
            )
            await asyncio.sleep(delay)
            attempt += 1


def _status_error(exc: httpx.HTTPStatusError, operation_name: str) -> RemoteStoreError:
    response = exc.response
    status_code = response.status_code
    body: StoreErrorBody | None = None
    try:
        body = StoreErrorBody.model_validate(response.json())
    except ValueError:
        body = None
    detail = (body.message if body else None) or response.reason_phrase or "request failed"
    details: dict[str, Any] = {"operation": operation_name, "status_code": status_code}
    if body and body.code:
        details["code"] = body.code

    message = f"{operation_name} failed with HTTP {status_code}: {detail}"
    if status_code in (401, 403):
        return RemoteAuthError(message, details, status_code=status_code)
    if status_code == 404:
        return RemoteNotFoundError(message, details, status_code=status_code)
    return RemoteStoreError(message, details, status_code=status_code)


class RestRemoteStore:
    """Async client for a PostgREST-style bookmark table with a streamed change feed.

    Use as an async context manager; the underlying ``httpx.AsyncClient``
    lives for the duration of the ``async with`` block.
    """

    DEFAULT_TIMEOUTS: dict[str, float] = {
        "fetch": 30.0,
        "insert": 15.0,
        "update": 15.0,
        "delete": 15.0,
        "subscribe": 10.0,
    }

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
        *,
        table: str = "bookmarks",
        timeout: float = 30.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        reconnect_delay: float = 1.0,
        endpoint_timeouts: dict[str, float] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the store client.

        Args:
            base_url: Project URL (e.g., https://xyz.example.co)
            api_key: Public API key sent with every request
            access_token: Signed-in user's token; falls back to the API key
            table: Bookmark table name
            timeout: Default request timeout in seconds
            max_retries: Retries for transient failures (0 disables)
            retry_base_delay: Base delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            reconnect_delay: Initial delay before the change feed reconnects
            endpoint_timeouts: Per-operation timeouts overriding the defaults
            transport: Custom httpx transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = _ensure_api_key(api_key, name="Remote store")
        self.access_token = access_token
        self.table = table
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.reconnect_delay = reconnect_delay
        self.endpoint_timeouts = {**self.DEFAULT_TIMEOUTS}
        if endpoint_timeouts:
            self.endpoint_timeouts.update(endpoint_timeouts)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._subscriptions: set[ChangeFeedSubscription] = set()

    @classmethod
    def from_config(
        cls,
        config: RemoteStoreConfig,
        access_token: str | None = None,
        **kwargs: Any,
    ) -> RestRemoteStore:
        return cls(
            config.url,
            config.api_key,
            access_token,
            table=config.table,
            timeout=float(config.timeout_sec),
            max_retries=config.max_retries,
            **kwargs,
        )

    def get_timeout(self, endpoint: str) -> float:
        return self.endpoint_timeouts.get(endpoint, self.timeout)

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }

    def set_access_token(self, access_token: str | None) -> None:
        """Switch the bearer token, e.g. after the auth session refreshed."""
        self.access_token = access_token
        if self._client is not None:
            self._client.headers.update(self._headers())

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        for subscription in list(self._subscriptions):
            await subscription.unsubscribe()
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RemoteStoreError("Client not initialized. Use async context manager.")
        return self._client

    @property
    def _table_path(self) -> str:
        return f"{REST_PREFIX}/{self.table}"

    async def _call(self, func: Callable[[], Awaitable[T]], operation_name: str) -> T:
        """Run a request with retry, mapping httpx failures to store errors."""
        try:
            return await retry_with_backoff(
                func,
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                max_delay=self.retry_max_delay,
                operation_name=operation_name,
            )
        except httpx.HTTPStatusError as exc:
            raise _status_error(exc, operation_name) from exc
        except httpx.RequestError as exc:
            raise RemoteStoreError(
                f"{operation_name} failed: {exc}", {"operation": operation_name}
            ) from exc

    async def fetch(self, user_id: str, *, category: str | None = None) -> list[Bookmark]:
        """Fetch a user's bookmarks, newest first."""
        params = {
            "select": "*",
            "user_id": f"eq.{user_id}",
            "order": "created_at.desc",
        }
        if category is not None:
            params["category"] = f"eq.{category}"
        timeout = self.get_timeout("fetch")

        async def _fetch() -> Any:
            response = await self.client.get(self._table_path, params=params, timeout=timeout)
            response.raise_for_status()
            return response.json()

        bookmarks = decode_records(await self._call(_fetch, "fetch"))
        logger.debug(
            "remote_store_fetched",
            extra={"user_id": user_id, "category": category, "count": len(bookmarks)},
        )
        return bookmarks

    async def insert(self, user_id: str, draft: BookmarkDraft) -> Bookmark:
        """Create a bookmark; the store assigns id and created_at."""
        payload = {**draft.to_payload(), "user_id": user_id}
        timeout = self.get_timeout("insert")

        async def _insert() -> Any:
            response = await self.client.post(
                self._table_path,
                json=payload,
                headers={"Prefer": "return=representation"},
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()

        record = decode_record(self._single_row(await self._call(_insert, "insert"), "insert"))
        logger.info("remote_store_bookmark_created", extra={"bookmark_id": record.id})
        return record

    async def update(self, bookmark_id: str, draft: BookmarkDraft) -> Bookmark:
        """Replace a bookmark's editable fields and return the canonical row."""
        timeout = self.get_timeout("update")

        async def _update() -> Any:
            response = await self.client.patch(
                self._table_path,
                params={"id": f"eq.{bookmark_id}"},
                json=draft.to_payload(),
                headers={"Prefer": "return=representation"},
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()

        rows = await self._call(_update, f"update({bookmark_id})")
        if isinstance(rows, list) and not rows:
            raise RemoteNotFoundError(
                f"Bookmark {bookmark_id} not found", {"bookmark_id": bookmark_id}
            )
        return decode_record(self._single_row(rows, "update"))

    async def delete(self, bookmark_id: str) -> None:
        """Delete a bookmark. Deleting an absent id succeeds."""
        timeout = self.get_timeout("delete")

        async def _delete() -> None:
            response = await self.client.delete(
                self._table_path, params={"id": f"eq.{bookmark_id}"}, timeout=timeout
            )
            response.raise_for_status()

        await self._call(_delete, f"delete({bookmark_id})")
        logger.info("remote_store_bookmark_deleted", extra={"bookmark_id": bookmark_id})

    async def subscribe(self, user_id: str, handler: ChangeHandler) -> ChangeFeedSubscription:
        """Start streaming row changes for ``user_id`` into ``handler``."""
        params = {"table": self.table, "user_id": f"eq.{user_id}"}
        timeout = httpx.Timeout(self.get_timeout("subscribe"), read=None)
        client = self.client

        def _open() -> AbstractAsyncContextManager[httpx.Response]:
            return client.stream("GET", CHANGES_PATH, params=params, timeout=timeout)

        subscription = ChangeFeedSubscription(
            _open,
            handler,
            user_id=user_id,
            reconnect_delay=self.reconnect_delay,
            max_reconnect_delay=self.retry_max_delay,
            on_close=self._subscriptions.discard,
        )
        self._subscriptions.add(subscription)
        subscription.start()
        return subscription

    @staticmethod
    def _single_row(data: Any, operation_name: str) -> Any:
        if isinstance(data, list):
            if len(data) != 1:
                raise RecordValidationError(
                    f"{operation_name} returned {len(data)} rows, expected 1",
                    {"operation": operation_name},
                )
            return data[0]
        return data


class ChangeFeedSubscription:
    """Background task reading the change feed until unsubscribed.

    The stream is reopened with exponential backoff when it drops. Changes
    made while disconnected are not replayed.
    """

    def __init__(
        self,
        open_stream: Callable[[], AbstractAsyncContextManager[httpx.Response]],
        handler: ChangeHandler,
        *,
        user_id: str,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = DEFAULT_MAX_DELAY,
        on_close: Callable[[ChangeFeedSubscription], None] | None = None,
    ) -> None:
        self._open_stream = open_stream
        self._handler = handler
        self.user_id = user_id
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._on_close = on_close
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            logger.warning("change_feed_already_started", extra={"user_id": self.user_id})
            return
        self._task = asyncio.create_task(self._run(), name=f"change-feed-{self.user_id}")

    async def unsubscribe(self) -> None:
        task, self._task = self._task, None
        if self._on_close is not None:
            self._on_close(self)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("change_feed_unsubscribed", extra={"user_id": self.user_id})

    async def _run(self) -> None:
        delay = self._reconnect_delay
        while True:
            try:
                async with self._open_stream() as response:
                    response.raise_for_status()
                    logger.info("change_feed_connected", extra={"user_id": self.user_id})
                    delay = self._reconnect_delay
                    async for line in response.aiter_lines():
                        await self._dispatch(line)
                logger.info("change_feed_ended", extra={"user_id": self.user_id})
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                if status_code in (401, 403):
                    logger.error(
                        "change_feed_unauthorized",
                        extra={"user_id": self.user_id, "status_code": status_code},
                    )
                    return
                logger.warning(
                    "change_feed_http_error",
                    extra={"user_id": self.user_id, "status_code": status_code},
                )
            except httpx.RequestError as exc:
                logger.warning(
                    "change_feed_disconnected",
                    extra={"user_id": self.user_id, "error": str(exc)},
                )
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_reconnect_delay)

    async def _dispatch(self, line: str) -> None:
        event = parse_change_line(line)
        if event is None:
            return
        try:
            await self._handler(event)
        except Exception:
            logger.exception(
                "change_feed_handler_failed",
                extra={"user_id": self.user_id, "event_type": type(event).__name__},
            )
