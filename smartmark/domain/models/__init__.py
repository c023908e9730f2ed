from smartmark.domain.models.bookmark import Bookmark, BookmarkDraft

__all__ = ["Bookmark", "BookmarkDraft"]
