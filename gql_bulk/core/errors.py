"""Exceptions raised while running bulk operations.

All bulk-specific failures derive from BulkError so callers can record the
failure against the originating item and keep going.
"""

from typing import Any


class BulkError(Exception):
    """Base class for bulk operation failures."""


class InvalidSchemeError(BulkError):
    """Raised when a result URL is not http or https."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            f'Invalid protocol. The URL must start with "http://" or "https://": {url}'
        )


class InvalidDelimiterError(BulkError):
    """Raised when a line delimiter can never advance the decoder."""


class TransportError(BulkError):
    """Raised when a result stream cannot be opened."""

    def __init__(self, message: str, url: str, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class SubmissionError(BulkError):
    """Raised when the platform rejects a staging or bulk run request."""

    def __init__(self, message: str, user_errors: list[dict[str, Any]] | None = None):
        self.user_errors = user_errors or []
        super().__init__(message)

    @property
    def messages(self) -> list[str]:
        return [e.get("message", str(e)) for e in self.user_errors]


class UploadError(BulkError):
    """Raised when the staged file upload is not accepted."""

    def __init__(self, status_code: int, reason: str, body: str):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"Error: {reason} {body}")


class AuthenticationError(BulkError):
    """Raised when the OAuth2 token endpoint does not issue a token."""


class PollCancelledError(BulkError):
    """Raised when polling is stopped through the cancel event."""

    def __init__(self, operation):
        self.operation = operation
        super().__init__(f"Polling cancelled for bulk operation {operation.id}")


class ItemError(BulkError):
    """Wraps a failure with the index of the input item that caused it."""

    def __init__(self, item_index: int, error: Exception):
        self.item_index = item_index
        self.error = error
        super().__init__(f"{error} (item: {item_index})")
