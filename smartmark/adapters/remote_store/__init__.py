"""Remote bookmark store adapters."""

from smartmark.adapters.remote_store.client import ChangeFeedSubscription, RestRemoteStore
from smartmark.adapters.remote_store.in_memory import InMemoryRemoteStore
from smartmark.adapters.remote_store.protocols import RemoteStoreProtocol, Subscription

__all__ = [
    "ChangeFeedSubscription",
    "InMemoryRemoteStore",
    "RemoteStoreProtocol",
    "RestRemoteStore",
    "Subscription",
]
