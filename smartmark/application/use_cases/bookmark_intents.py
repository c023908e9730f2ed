"""Use cases behind the add / edit / delete buttons.

Each intent returns an ``IntentResult`` instead of raising, carrying the
message and kind a notification toast needs.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import ValidationError

from smartmark.domain.exceptions import DraftValidationError, SmartmarkError
from smartmark.domain.models.bookmark import Bookmark, BookmarkDraft
from smartmark.services.bookmark_synchronizer import BookmarkSynchronizer

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    """Toast styles shown for an intent outcome."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class IntentResult:
    """Outcome of a mutation intent."""

    ok: bool
    message: str
    kind: NotificationKind
    bookmark: Bookmark | None = None
    error: SmartmarkError | None = None

    @classmethod
    def success(cls, message: str, bookmark: Bookmark | None = None) -> "IntentResult":
        return cls(ok=True, message=message, kind=NotificationKind.SUCCESS, bookmark=bookmark)

    @classmethod
    def failure(cls, message: str, error: SmartmarkError) -> "IntentResult":
        return cls(ok=False, message=message, kind=NotificationKind.ERROR, error=error)


def coerce_draft(draft: BookmarkDraft | Mapping[str, Any]) -> BookmarkDraft:
    """Accept a draft or the raw form fields.

    Raises:
        DraftValidationError: If the fields do not form a valid draft.
    """
    if isinstance(draft, BookmarkDraft):
        return draft
    try:
        return BookmarkDraft.model_validate(dict(draft))
    except ValidationError as exc:
        fields = sorted({str(error["loc"][0]) for error in exc.errors() if error["loc"]})
        msg = f"Invalid bookmark: check {', '.join(fields) or 'the form'}"
        raise DraftValidationError(msg, {"fields": fields}) from exc


class BookmarkIntents:
    """Presentation-facing commands over a ``BookmarkSynchronizer``.

    Example:
        ```python
        intents = BookmarkIntents(sync)
        result = await intents.request_add({"title": "Docs", "url": "https://docs.python.org"})
        if not result.ok:
            show_toast(result.message, result.kind)
        ```

    """

    def __init__(self, synchronizer: BookmarkSynchronizer) -> None:
        self._sync = synchronizer

    async def request_add(self, draft: BookmarkDraft | Mapping[str, Any]) -> IntentResult:
        try:
            record = await self._sync.add(coerce_draft(draft))
        except SmartmarkError as exc:
            return self._failed("add", "Failed to add bookmark", exc)
        return IntentResult.success("Bookmark added successfully", record)

    async def request_update(
        self, bookmark_id: str, draft: BookmarkDraft | Mapping[str, Any]
    ) -> IntentResult:
        try:
            record = await self._sync.update(bookmark_id, coerce_draft(draft))
        except SmartmarkError as exc:
            return self._failed("update", "Failed to update bookmark", exc)
        return IntentResult.success("Bookmark updated successfully", record)

    async def request_delete(self, bookmark_id: str) -> IntentResult:
        try:
            await self._sync.remove(bookmark_id)
        except SmartmarkError as exc:
            return self._failed("delete", "Failed to delete bookmark", exc)
        return IntentResult.success("Bookmark deleted successfully")

    @staticmethod
    def _failed(operation: str, prefix: str, exc: SmartmarkError) -> IntentResult:
        logger.warning(
            "bookmark_intent_failed",
            extra={"operation": operation, "error_type": type(exc).__name__, "error": exc.message},
        )
        return IntentResult.failure(f"{prefix}: {exc.message}", exc)
