"""Tests for RestRemoteStore and the change-feed subscription.

Requests are served by ``httpx.MockTransport`` so the tests check the
exact request shape and the mapping of HTTP failures to store errors.
"""

from __future__ import annotations

import asyncio
import json
import unittest
from typing import Any

import httpx

from smartmark.adapters.remote_store.client import RestRemoteStore, retry_with_backoff
from smartmark.config.integrations import RemoteStoreConfig
from smartmark.domain.events.bookmark_events import BookmarkDeleted, BookmarkInserted
from smartmark.domain.exceptions import (
    RecordValidationError,
    RemoteAuthError,
    RemoteNotFoundError,
    RemoteStoreError,
)
from tests.conftest import make_draft

BASE_URL = "https://store.example"


def _row(bookmark_id: str = "b1", **overrides: Any) -> dict[str, Any]:
    row = {
        "id": bookmark_id,
        "title": "Python docs",
        "url": "https://docs.python.org",
        "description": None,
        "category": "Work",
        "created_at": "2025-06-15T12:00:00+00:00",
        "user_id": "user-1",
    }
    row.update(overrides)
    return row


class _HangingStream(httpx.AsyncByteStream):
    """Response body that never produces a line."""

    async def __aiter__(self):
        await asyncio.Event().wait()
        yield b""


class RemoteStoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Base case recording every request the store sends."""

    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list[Any] = []

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        # httpx responses are single-use.
        return httpx.Response(
            response.status_code, headers=response.headers, content=response.content
        )

    def make_store(self, **kwargs: Any) -> RestRemoteStore:
        kwargs.setdefault("retry_base_delay", 0)
        return RestRemoteStore(
            BASE_URL,
            "anon-key",
            kwargs.pop("access_token", "user-token"),
            transport=httpx.MockTransport(self._handler),
            **kwargs,
        )


class TestRequests(RemoteStoreTestCase):
    async def test_fetch_filters_by_user_newest_first(self):
        self.responses = [httpx.Response(200, json=[_row("b2"), _row("b1")])]

        async with self.make_store() as store:
            bookmarks = await store.fetch("user-1")

        assert [b.id for b in bookmarks] == ["b2", "b1"]
        request = self.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/bookmarks"
        assert request.url.params["user_id"] == "eq.user-1"
        assert request.url.params["order"] == "created_at.desc"
        assert "category" not in request.url.params
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer user-token"

    async def test_fetch_with_category(self):
        self.responses = [httpx.Response(200, json=[])]

        async with self.make_store(table="saved_links") as store:
            await store.fetch("user-1", category="Work")

        assert self.requests[0].url.path == "/rest/v1/saved_links"
        assert self.requests[0].url.params["category"] == "eq.Work"

    async def test_api_key_is_bearer_without_access_token(self):
        self.responses = [httpx.Response(200, json=[])]

        async with self.make_store(access_token=None) as store:
            await store.fetch("user-1")

        assert self.requests[0].headers["authorization"] == "Bearer anon-key"

    async def test_set_access_token_updates_open_client(self):
        self.responses = [httpx.Response(200, json=[])]

        async with self.make_store() as store:
            store.set_access_token("refreshed")
            await store.fetch("user-1")

        assert self.requests[0].headers["authorization"] == "Bearer refreshed"

    async def test_insert_sends_owner_and_returns_canonical_row(self):
        self.responses = [httpx.Response(201, json=[_row("new-id", title="Docs")])]

        async with self.make_store() as store:
            record = await store.insert("user-1", make_draft("Docs", category="Work"))

        request = self.requests[0]
        assert request.method == "POST"
        assert request.headers["prefer"] == "return=representation"
        assert json.loads(request.content) == {
            "title": "Docs",
            "url": "https://docs.python.org",
            "description": None,
            "category": "Work",
            "user_id": "user-1",
        }
        assert record.id == "new-id"

    async def test_update_targets_single_row(self):
        self.responses = [httpx.Response(200, json=[_row("b1", title="Edited")])]

        async with self.make_store() as store:
            record = await store.update("b1", make_draft("Edited"))

        request = self.requests[0]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.b1"
        assert "user_id" not in json.loads(request.content)
        assert record.title == "Edited"

    async def test_update_of_missing_row_raises_not_found(self):
        self.responses = [httpx.Response(200, json=[])]

        async with self.make_store() as store:
            with self.assertRaises(RemoteNotFoundError):
                await store.update("ghost", make_draft())

    async def test_delete(self):
        self.responses = [httpx.Response(204)]

        async with self.make_store() as store:
            await store.delete("b1")

        assert self.requests[0].method == "DELETE"
        assert self.requests[0].url.params["id"] == "eq.b1"

    async def test_invalid_row_is_dropped_from_fetch(self):
        self.responses = [
            httpx.Response(200, json=[_row("b1", created_at="not-a-date"), _row("b2")])
        ]

        async with self.make_store() as store:
            with self.assertLogs("smartmark.adapters.remote_store.models", level="WARNING"):
                records = await store.fetch("user-1")

        self.assertEqual([record.id for record in records], ["b2"])

    async def test_non_list_fetch_body_is_rejected(self):
        self.responses = [httpx.Response(200, json={"id": "b1"})]

        async with self.make_store() as store:
            with self.assertRaises(RecordValidationError):
                await store.fetch("user-1")

    async def test_call_outside_context_raises(self):
        store = self.make_store()

        with self.assertRaises(RemoteStoreError):
            await store.fetch("user-1")

    def test_api_key_is_required(self):
        with self.assertRaises(ValueError):
            RestRemoteStore(BASE_URL, "")

    def test_from_config(self):
        config = RemoteStoreConfig(
            url="https://cfg.example/", api_key="k", table="links", timeout_sec=5, max_retries=2
        )

        store = RestRemoteStore.from_config(config, "tok")

        assert store.base_url == "https://cfg.example"
        assert store.table == "links"
        assert store.timeout == 5.0
        assert store.max_retries == 2
        assert store.access_token == "tok"


class TestErrorMapping(RemoteStoreTestCase):
    async def _fetch_error(self, response: Any) -> RemoteStoreError:
        self.responses = [response]
        async with self.make_store() as store:
            with self.assertRaises(RemoteStoreError) as ctx:
                await store.fetch("user-1")
        return ctx.exception

    async def test_unauthorized(self):
        error = await self._fetch_error(httpx.Response(401, json={"message": "JWT expired"}))

        assert isinstance(error, RemoteAuthError)
        assert error.status_code == 401
        assert "JWT expired" in error.message

    async def test_forbidden(self):
        error = await self._fetch_error(httpx.Response(403))

        assert isinstance(error, RemoteAuthError)

    async def test_not_found(self):
        error = await self._fetch_error(httpx.Response(404, text="no such table"))

        assert isinstance(error, RemoteNotFoundError)

    async def test_bad_request_carries_store_error_code(self):
        error = await self._fetch_error(
            httpx.Response(400, json={"message": "invalid filter", "code": "PGRST100"})
        )

        assert type(error) is RemoteStoreError
        assert error.status_code == 400
        assert error.details["code"] == "PGRST100"
        assert "invalid filter" in error.message

    async def test_transport_failure(self):
        error = await self._fetch_error(httpx.ConnectError("connection refused"))

        assert type(error) is RemoteStoreError
        assert error.status_code is None

    async def test_server_error_is_not_retried_by_default(self):
        await self._fetch_error(httpx.Response(503))

        assert len(self.requests) == 1


class TestRetry(RemoteStoreTestCase):
    async def test_transient_errors_are_retried(self):
        self.responses = [httpx.Response(503), httpx.Response(502), httpx.Response(200, json=[])]

        async with self.make_store(max_retries=2) as store:
            assert await store.fetch("user-1") == []

        assert len(self.requests) == 3

    async def test_gives_up_after_max_retries(self):
        self.responses = [httpx.Response(503)]

        async with self.make_store(max_retries=2) as store:
            with self.assertRaises(RemoteStoreError) as ctx:
                await store.fetch("user-1")

        assert ctx.exception.status_code == 503
        assert len(self.requests) == 3

    async def test_client_errors_are_not_retried(self):
        self.responses = [httpx.Response(422, json={"message": "bad row"})]

        async with self.make_store(max_retries=3) as store:
            with self.assertRaises(RemoteStoreError):
                await store.insert("user-1", make_draft())

        assert len(self.requests) == 1

    async def test_retry_with_backoff_reraises_non_retryable(self):
        calls = 0

        async def _boom():
            nonlocal calls
            calls += 1
            raise KeyError("x")

        with self.assertRaises(KeyError):
            await retry_with_backoff(_boom, max_retries=5, base_delay=0)
        assert calls == 1


class TestChangeFeed(RemoteStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.events: list[Any] = []
        self.received = asyncio.Event()

    async def _on_change(self, event: Any) -> None:
        self.events.append(event)
        self.received.set()

    @staticmethod
    def _feed(*messages: Any) -> httpx.Response:
        lines = [m if isinstance(m, str) else json.dumps(m) for m in messages]
        return httpx.Response(200, content="\n".join(lines).encode() + b"\n")

    @staticmethod
    def _hanging(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=_HangingStream())

    async def _wait_for_events(self, count: int) -> None:
        async def _poll() -> None:
            while len(self.events) < count:
                self.received.clear()
                await self.received.wait()

        await asyncio.wait_for(_poll(), timeout=2)

    async def test_streams_decoded_events(self):
        self.responses = [
            self._feed(
                ": keep-alive",
                {"eventType": "INSERT", "new": _row("b1")},
                "",
                "data: " + json.dumps({"type": "DELETE", "old": {"id": "b0"}}),
            ),
            self._hanging,
        ]

        async with self.make_store(reconnect_delay=0) as store:
            subscription = await store.subscribe("user-1", self._on_change)
            await self._wait_for_events(2)
            assert subscription.active

        assert isinstance(self.events[0], BookmarkInserted)
        assert isinstance(self.events[1], BookmarkDeleted)
        assert self.events[1].bookmark_id == "b0"
        request = self.requests[0]
        assert request.url.path == "/realtime/v1/changes"
        assert request.url.params["table"] == "bookmarks"
        assert request.url.params["user_id"] == "eq.user-1"
        assert not subscription.active

    async def test_malformed_lines_are_skipped(self):
        self.responses = [
            self._feed("{not json", {"eventType": "TRUNCATE"}, {"type": "INSERT", "new": _row()}),
            self._hanging,
        ]

        async with self.make_store(reconnect_delay=0) as store:
            await store.subscribe("user-1", self._on_change)
            await self._wait_for_events(1)

        assert len(self.events) == 1

    async def test_reconnects_after_server_error(self):
        self.responses = [
            httpx.Response(503),
            self._feed({"eventType": "UPDATE", "new": _row("b1", title="New")}),
            self._hanging,
        ]

        async with self.make_store(reconnect_delay=0) as store:
            await store.subscribe("user-1", self._on_change)
            await self._wait_for_events(1)

        assert self.events[0].record.title == "New"
        assert len(self.requests) >= 2

    async def test_stops_when_unauthorized(self):
        self.responses = [httpx.Response(401)]

        async with self.make_store(reconnect_delay=0) as store:
            subscription = await store.subscribe("user-1", self._on_change)
            for _ in range(50):
                if not subscription.active:
                    break
                await asyncio.sleep(0)

            assert not subscription.active
        assert len(self.requests) == 1

    async def test_handler_failure_does_not_stop_feed(self):
        self.responses = [
            self._feed(
                {"type": "DELETE", "old": {"id": "a"}},
                {"type": "DELETE", "old": {"id": "b"}},
            ),
            self._hanging,
        ]
        seen: list[str] = []

        async def _flaky(event: Any) -> None:
            seen.append(event.bookmark_id)
            if event.bookmark_id == "a":
                raise RuntimeError("handler bug")
            self.received.set()

        async with self.make_store(reconnect_delay=0) as store:
            await store.subscribe("user-1", _flaky)
            await asyncio.wait_for(self.received.wait(), timeout=2)

        assert seen == ["a", "b"]

    async def test_unsubscribe_is_idempotent(self):
        self.responses = [self._hanging]

        async with self.make_store() as store:
            subscription = await store.subscribe("user-1", self._on_change)
            await subscription.unsubscribe()
            await subscription.unsubscribe()

            assert not subscription.active


if __name__ == "__main__":
    unittest.main()
