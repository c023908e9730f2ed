"""Wiring helpers for applications embedding the bookmark core."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from smartmark.adapters.remote_store.client import RestRemoteStore
from smartmark.core.logging_utils import setup_json_logging
from smartmark.services.bookmark_synchronizer import BookmarkSynchronizer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from smartmark.config.settings import AppConfig
    from smartmark.infrastructure.messaging.event_bus import EventBus

logger = logging.getLogger(__name__)


def configure_logging(config: AppConfig) -> None:
    runtime = config.runtime
    if runtime.log_json:
        setup_json_logging(level=runtime.log_level, log_file=runtime.log_file)
        return
    logging.basicConfig(
        level=getattr(logging, runtime.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def open_bookmark_session(
    config: AppConfig,
    user_id: str | None,
    *,
    access_token: str | None = None,
    event_bus: EventBus | None = None,
) -> AsyncIterator[BookmarkSynchronizer]:
    """Connect to the configured store and yield an initialized synchronizer.

    The change-feed subscription and HTTP client are released when the
    block exits, however it exits.
    """
    async with RestRemoteStore.from_config(config.store, access_token) as store:
        async with BookmarkSynchronizer(store, event_bus=event_bus) as sync:
            await sync.initialize(user_id)
            yield sync
