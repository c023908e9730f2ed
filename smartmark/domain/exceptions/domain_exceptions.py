"""Domain-specific exceptions.

Every failure the bookmark core reports derives from ``SmartmarkError`` so
the presentation layer can turn it into a user-facing message.
"""


class SmartmarkError(Exception):
    """Base exception for all bookmark core errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RemoteStoreError(SmartmarkError):
    """Raised when a call to the remote bookmark store fails."""

    def __init__(
        self, message: str, details: dict | None = None, *, status_code: int | None = None
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class RemoteNotFoundError(RemoteStoreError):
    """Raised when the remote store has no row for the requested id."""

    pass


class RemoteAuthError(RemoteStoreError):
    """Raised when the remote store rejects the credentials."""

    pass


class RecordValidationError(RemoteStoreError):
    """Raised when a record returned by the store cannot be decoded."""

    pass


class NoSessionError(SmartmarkError):
    """Raised when a mutation is requested without a signed-in user."""

    pass


class DraftValidationError(SmartmarkError):
    """Raised when a bookmark draft fails validation."""

    pass
