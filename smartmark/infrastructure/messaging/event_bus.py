"""In-memory event bus for bookmark domain events.

The synchronizer publishes every change it applies to its local mirror;
presentation code subscribes to re-render without polling the snapshot.
Handlers registered for a base class also receive its subclasses, so a
view can listen to ``DomainEvent`` once instead of to each change type.
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TypeVar

from smartmark.domain.events.bookmark_events import (
    BookmarkDeleted,
    BookmarkInserted,
    BookmarkUpdated,
    DomainEvent,
)

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent", bound=DomainEvent)

EventHandler = Callable[[TEvent], Awaitable[None]]
Unsubscribe = Callable[[], None]

CHANGE_EVENT_TYPES: tuple[type[DomainEvent], ...] = (
    BookmarkInserted,
    BookmarkUpdated,
    BookmarkDeleted,
)


def _handler_name(handler: Callable[..., object]) -> str:
    return getattr(handler, "__name__", type(handler).__name__)


class EventBus:
    """Dispatches bookmark events to async handlers, most specific type first.

    Example:
        ```python
        bus = EventBus()

        async def rerender(event: DomainEvent) -> None:
            view.refresh(sync.snapshot)

        stop = bus.subscribe(DomainEvent, rerender)
        ...
        stop()
        ```

    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type[TEvent], handler: EventHandler[TEvent]) -> Unsubscribe:
        """Register ``handler`` for ``event_type`` and its subclasses.

        Returns:
            A callable that removes this registration.
        """
        self._handlers[event_type].append(handler)
        logger.debug(
            "event_handler_subscribed",
            extra={"event_type": event_type.__name__, "handler": _handler_name(handler)},
        )
        return lambda: self.unsubscribe(event_type, handler)

    def subscribe_changes(self, handler: EventHandler[DomainEvent]) -> Unsubscribe:
        """Register ``handler`` for inserted, updated and deleted bookmarks."""
        stops = [self.subscribe(event_type, handler) for event_type in CHANGE_EVENT_TYPES]

        def _stop() -> None:
            for stop in stops:
                stop()

        return _stop

    def unsubscribe(self, event_type: type[TEvent], handler: EventHandler[TEvent]) -> None:
        """Remove one registration. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if not handlers or handler not in handlers:
            logger.debug(
                "event_handler_not_found",
                extra={"event_type": event_type.__name__, "handler": _handler_name(handler)},
            )
            return
        handlers.remove(handler)
        if not handlers:
            del self._handlers[event_type]

    def handlers_for(self, event_type: type[DomainEvent]) -> list[EventHandler]:
        """Handlers that receive ``event_type``, each once, most specific first."""
        resolved: list[EventHandler] = []
        for klass in event_type.__mro__:
            for handler in self._handlers.get(klass, ()):
                if handler not in resolved:
                    resolved.append(handler)
        return resolved

    async def publish(self, event: DomainEvent) -> None:
        """Run every matching handler in turn.

        A failing handler is logged and the remaining handlers still run.
        """
        event_type = type(event)
        handlers = self.handlers_for(event_type)
        logger.debug(
            "event_published",
            extra={
                "event_type": event_type.__name__,
                "bookmark_id": event.aggregate_id,
                "handler_count": len(handlers),
            },
        )

        for handler in handlers:
            try:
                await handler(event)
            except Exception as exc:
                logger.exception(
                    "event_handler_failed",
                    extra={
                        "event_type": event_type.__name__,
                        "handler": _handler_name(handler),
                        "bookmark_id": event.aggregate_id,
                        "error": str(exc),
                    },
                )

    def clear_handlers(self, event_type: type[DomainEvent] | None = None) -> None:
        """Drop registrations made for ``event_type``, or all of them."""
        if event_type is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event_type, None)

    def get_handler_count(self, event_type: type[DomainEvent]) -> int:
        """Number of handlers ``event_type`` would be dispatched to."""
        return len(self.handlers_for(event_type))
