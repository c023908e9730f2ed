from __future__ import annotations

from ._validators import _ensure_api_key
from .analytics import DEFAULT_CATEGORY_PALETTE, AnalyticsConfig
from .integrations import RemoteStoreConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config

__all__ = [
    "DEFAULT_CATEGORY_PALETTE",
    "AnalyticsConfig",
    "AppConfig",
    "RemoteStoreConfig",
    "RuntimeConfig",
    "Settings",
    "_ensure_api_key",
    "load_config",
]
