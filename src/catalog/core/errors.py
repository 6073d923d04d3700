"""Error taxonomy shared by the storage gateway and the book service.

The HTTP layer renders each family with its own status code; nothing in
the core retries on any of them.
"""

from typing import Any


class CatalogError(Exception):
    """Base class for every classified catalog failure."""

    kind = "catalog_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BookValidationError(CatalogError):
    """Payload is missing a field, has an empty field or is malformed."""

    kind = "validation_error"

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class ConflictError(CatalogError):
    """Another book already holds the requested title."""

    kind = "conflict"

    def __init__(self, title: str, message: str | None = None) -> None:
        super().__init__(message or "Book with the same title already exists!")
        self.title = title


class BookNotFoundError(CatalogError):
    """No book exists with the referenced id."""

    kind = "not_found"

    def __init__(self, book_id: int) -> None:
        super().__init__("Book not found!")
        self.book_id = book_id


class StorageError(CatalogError):
    """Connectivity, timeout or otherwise unclassified storage failure."""

    kind = "storage_error"


class StorageTimeoutError(StorageError):
    """The operation's deadline passed or its request was cancelled."""


class DuplicateTitleError(StorageError):
    """The storage-level unique constraint on the title rejected a write."""

    def __init__(self, title: str) -> None:
        super().__init__(f"Title {title!r} violates the unique constraint")
        self.title = title


class NoRowsAffectedError(StorageError):
    """A mutation matched no row."""

    def __init__(self, book_id: int) -> None:
        super().__init__(f"No book row matched id {book_id}")
        self.book_id = book_id
