from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def local_now() -> datetime:
    """Return the current time in the machine's local zone (timezone-aware)."""
    return datetime.now().astimezone()


def ensure_datetime(value: Any) -> datetime | None:
    """Coerce a store timestamp to an aware datetime.

    Accepts datetimes and ISO-8601 strings (including a trailing ``Z``).
    Naive values are assumed UTC. Anything unparseable yields None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    if isinstance(value, str):
        if not value:
            return None
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("ensure_datetime_parse_failed", extra={"value": repr(value)})
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed
    logger.warning(
        "ensure_datetime_unexpected_type",
        extra={"type": type(value).__name__, "value": repr(value)},
    )
    return None
