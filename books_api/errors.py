"""
Errors raised by the book repositories.

Not-found is not an error here: lookups return ``None`` and the request
handlers decide what that means.
"""

from typing import Any, Optional


class BookStoreError(Exception):
    """Base exception for repository failures."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConcurrencyConflict(BookStoreError):
    """Raised when an update did not touch the row it targeted."""

    def __init__(self, book_id: int):
        super().__init__(
            message=f"Book {book_id} was changed or removed concurrently",
            details={"book_id": book_id},
        )
        self.book_id = book_id


class StoreAccessError(BookStoreError):
    """Raised when the record store fails for any other reason."""

    def __init__(self, operation: str, reason: Optional[str] = None):
        message = f"Book store operation '{operation}' failed"
        if reason:
            message += f": {reason}"
        super().__init__(message=message, details={"operation": operation, "reason": reason})
        self.operation = operation
