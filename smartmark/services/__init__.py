"""Bookmark synchronization, analytics and filtering services."""
