from smartmark.domain.exceptions.domain_exceptions import (
    DraftValidationError,
    NoSessionError,
    RecordValidationError,
    RemoteAuthError,
    RemoteNotFoundError,
    RemoteStoreError,
    SmartmarkError,
)

__all__ = [
    "DraftValidationError",
    "NoSessionError",
    "RecordValidationError",
    "RemoteAuthError",
    "RemoteNotFoundError",
    "RemoteStoreError",
    "SmartmarkError",
]
