"""Bookmark domain model.

``Bookmark`` is the canonical, server-confirmed record. ``BookmarkDraft``
holds the user-editable fields sent with add/edit intents.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from smartmark.core.time_utils import ensure_datetime


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class BookmarkDraft(BaseModel):
    """User-supplied bookmark fields (no id, no timestamp)."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: str | None = None
    category: str | None = None

    @field_validator("description", "category", mode="before")
    @classmethod
    def _normalize_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def to_payload(self) -> dict[str, Any]:
        """Row fields for an insert or update request."""
        return self.model_dump(mode="json")


class Bookmark(BaseModel):
    """A bookmark as stored remotely."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: str | None = None
    category: str | None = None
    created_at: datetime = Field(validation_alias=AliasChoices("created_at", "createdAt"))
    user_id: str | None = None

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        # Some stores hand out integer or UUID keys; ids stay opaque strings here.
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("title", "url")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be blank"
            raise ValueError(msg)
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> datetime:
        parsed = ensure_datetime(value)
        if parsed is None:
            msg = f"created_at is not a valid timestamp: {value!r}"
            raise ValueError(msg)
        return parsed

    @property
    def domain(self) -> str:
        """Host part of the URL without a leading ``www.``."""
        host = urlparse(self.url).hostname or ""
        return host.removeprefix("www.")

    def with_draft(self, draft: BookmarkDraft) -> Bookmark:
        """Return a copy with the editable fields replaced by ``draft``."""
        return self.model_copy(update=draft.model_dump())
