"""Pydantic models for the remote store wire format."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from smartmark.domain.events.bookmark_events import (
    BookmarkDeleted,
    BookmarkInserted,
    BookmarkUpdated,
    ChangeEvent,
)
from smartmark.domain.exceptions import RecordValidationError
from smartmark.domain.models.bookmark import Bookmark

logger = logging.getLogger(__name__)


class ChangeMessage(BaseModel):
    """One row change delivered by the change feed."""

    event_type: Literal["INSERT", "UPDATE", "DELETE"] = Field(
        validation_alias=AliasChoices("eventType", "event_type", "type")
    )
    new: dict[str, Any] = Field(default_factory=dict)
    old: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def to_event(self) -> ChangeEvent:
        """Decode into a domain change event.

        Raises:
            RecordValidationError: If the row payload is not a valid bookmark.
        """
        if self.event_type == "INSERT":
            return BookmarkInserted(record=decode_record(self.new))
        if self.event_type == "UPDATE":
            return BookmarkUpdated(record=decode_record(self.new))
        bookmark_id = self.old.get("id")
        if bookmark_id in (None, ""):
            raise RecordValidationError("DELETE change carries no row id", {"old": self.old})
        return BookmarkDeleted(bookmark_id=str(bookmark_id))


class StoreErrorBody(BaseModel):
    """Error document returned by the REST API."""

    model_config = ConfigDict(extra="ignore")

    message: str | None = None
    code: str | None = None
    details: str | None = None
    hint: str | None = None


def decode_record(raw: Any) -> Bookmark:
    """Validate one row into a ``Bookmark``."""
    try:
        return Bookmark.model_validate(raw)
    except ValidationError as exc:
        row_id = raw.get("id") if isinstance(raw, dict) else None
        raise RecordValidationError(
            f"Invalid bookmark record: {exc.error_count()} validation error(s)",
            {"id": row_id, "errors": exc.errors(include_url=False)},
        ) from exc


def decode_records(raw: Any) -> list[Bookmark]:
    """Validate a list of rows.

    Rows that fail validation are logged and dropped, the same way the change
    feed treats undecodable messages. A body that is not a list is rejected.
    """
    if not isinstance(raw, list):
        raise RecordValidationError(
            "Expected a list of bookmark records", {"type": type(raw).__name__}
        )
    records: list[Bookmark] = []
    for item in raw:
        try:
            records.append(decode_record(item))
        except RecordValidationError as exc:
            logger.warning(
                "remote_store_record_dropped",
                extra={"bookmark_id": exc.details.get("id"), "error": str(exc)},
            )
    return records


def parse_change_line(line: str) -> ChangeEvent | None:
    """Decode one line of the change feed.

    Blank lines and ``:`` keep-alive comments yield None, as do lines that
    fail to decode (logged and dropped).
    """
    text = line.strip()
    if not text or text.startswith(":"):
        return None
    if text.startswith("data:"):
        text = text[len("data:") :].strip()
    try:
        return ChangeMessage.model_validate(json.loads(text)).to_event()
    except (json.JSONDecodeError, ValidationError, RecordValidationError) as exc:
        logger.warning(
            "change_feed_message_dropped",
            extra={"error": str(exc), "line": text[:200]},
        )
        return None
