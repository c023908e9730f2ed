"""Unit tests for EventBus."""

import pytest

from smartmark.domain.events.bookmark_events import (
    BookmarkDeleted,
    BookmarkInserted,
    BookmarksReloaded,
    BookmarkUpdated,
    DomainEvent,
)
from smartmark.infrastructure.messaging.event_bus import EventBus
from tests.conftest import make_bookmark


class TestEventBus:
    """Test suite for EventBus."""

    @pytest.fixture
    def event_bus(self):
        """Create a fresh event bus for each test."""
        return EventBus()

    @pytest.mark.asyncio
    async def test_subscribe_and_publish(self, event_bus):
        """Test subscribing to and publishing events."""
        received = []

        async def handler(event: BookmarkInserted):
            received.append(event)

        event_bus.subscribe(BookmarkInserted, handler)
        event = BookmarkInserted(record=make_bookmark("b1"))

        await event_bus.publish(event)

        assert received == [event]

    @pytest.mark.asyncio
    async def test_handlers_ignore_sibling_event_types(self, event_bus):
        received = []

        async def handler(event):
            received.append(event)

        event_bus.subscribe(BookmarkDeleted, handler)

        await event_bus.publish(BookmarkInserted(record=make_bookmark("b1")))

        assert received == []

    @pytest.mark.asyncio
    async def test_base_class_handler_receives_every_event(self, event_bus):
        """A DomainEvent subscriber sees changes and reloads alike."""
        received = []

        async def handler(event):
            received.append(type(event).__name__)

        event_bus.subscribe(DomainEvent, handler)

        await event_bus.publish(BookmarkInserted(record=make_bookmark("b1")))
        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))
        await event_bus.publish(BookmarksReloaded(user_id="user-1", count=0))

        assert received == ["BookmarkInserted", "BookmarkDeleted", "BookmarksReloaded"]

    @pytest.mark.asyncio
    async def test_specific_handlers_run_before_base_handlers(self, event_bus):
        calls = []

        async def any_event(event):
            calls.append("any")

        async def deleted(event):
            calls.append("deleted")

        event_bus.subscribe(DomainEvent, any_event)
        event_bus.subscribe(BookmarkDeleted, deleted)

        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))

        assert calls == ["deleted", "any"]

    @pytest.mark.asyncio
    async def test_handler_on_base_and_subclass_runs_once(self, event_bus):
        calls = []

        async def handler(event):
            calls.append(event.aggregate_id)

        event_bus.subscribe(DomainEvent, handler)
        event_bus.subscribe(BookmarkDeleted, handler)

        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))

        assert calls == ["b1"]
        assert event_bus.get_handler_count(BookmarkDeleted) == 1

    @pytest.mark.asyncio
    async def test_multiple_handlers_run_in_subscription_order(self, event_bus):
        """Test multiple handlers subscribed to same event."""
        calls = []

        async def first(event):
            calls.append("first")

        async def second(event):
            calls.append("second")

        event_bus.subscribe(BookmarkDeleted, first)
        event_bus.subscribe(BookmarkDeleted, second)

        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, event_bus, caplog):
        """Test that one failing handler doesn't prevent others from running."""
        calls = []

        async def broken(event):
            raise RuntimeError("handler failed")

        async def healthy(event):
            calls.append(event.bookmark_id)

        event_bus.subscribe(BookmarkDeleted, broken)
        event_bus.subscribe(BookmarkDeleted, healthy)

        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))

        assert calls == ["b1"]
        assert any(record.message == "event_handler_failed" for record in caplog.records)

    @pytest.mark.asyncio
    async def test_subscribe_changes_covers_row_changes_only(self, event_bus):
        received = []

        async def handler(event):
            received.append(type(event).__name__)

        event_bus.subscribe_changes(handler)

        bookmark = make_bookmark("b1")
        await event_bus.publish(BookmarkInserted(record=bookmark))
        await event_bus.publish(BookmarkUpdated(record=bookmark))
        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))
        await event_bus.publish(BookmarksReloaded(user_id="user-1", count=1))

        assert received == ["BookmarkInserted", "BookmarkUpdated", "BookmarkDeleted"]

    @pytest.mark.asyncio
    async def test_subscribe_changes_returns_single_stop(self, event_bus):
        received = []

        async def handler(event):
            received.append(event)

        stop = event_bus.subscribe_changes(handler)
        stop()

        await event_bus.publish(BookmarkInserted(record=make_bookmark("b1")))
        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))

        assert received == []
        assert event_bus.get_handler_count(BookmarkUpdated) == 0

    @pytest.mark.asyncio
    async def test_returned_callable_unsubscribes(self, event_bus):
        calls = []

        async def handler(event):
            calls.append(event)

        stop = event_bus.subscribe(BookmarkDeleted, handler)
        stop()
        stop()

        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))

        assert calls == []

    @pytest.mark.asyncio
    async def test_unsubscribe(self, event_bus):
        """Test unsubscribing a handler."""
        calls = []

        async def handler(event):
            calls.append(event)

        event_bus.subscribe(BookmarkDeleted, handler)
        event_bus.unsubscribe(BookmarkDeleted, handler)
        event_bus.unsubscribe(BookmarkDeleted, handler)

        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))

        assert calls == []
        assert event_bus.get_handler_count(BookmarkDeleted) == 0

    @pytest.mark.asyncio
    async def test_publish_without_handlers(self, event_bus):
        """Test publishing an event nobody listens to."""
        await event_bus.publish(BookmarkDeleted(bookmark_id="b1"))

    def test_clear_handlers(self, event_bus):
        """Test clearing one event type and then all handlers."""

        async def handler(event):
            return None

        event_bus.subscribe(BookmarkDeleted, handler)
        event_bus.subscribe(BookmarkInserted, handler)

        event_bus.clear_handlers(BookmarkDeleted)
        assert event_bus.get_handler_count(BookmarkDeleted) == 0
        assert event_bus.get_handler_count(BookmarkInserted) == 1

        event_bus.clear_handlers()
        assert event_bus.get_handler_count(BookmarkInserted) == 0
