"""Book catalog use cases.

Create and Update run a two-step check-then-act sequence: an existence
check on the title, then the write. The check only narrows the race
window; the unique constraint on the books table stays the authority, and
a violation it reports is surfaced as a conflict as well.
"""

from collections.abc import Mapping
from typing import Any

from loguru import logger
from pydantic import ValidationError

from src.catalog.core.errors import (
    BookNotFoundError,
    BookValidationError,
    ConflictError,
    DuplicateTitleError,
)
from src.catalog.core.services.database.deadline import Deadline
from src.catalog.entities.service.book import Book, BookPayload, BookRepository


def parse_payload(payload: Any) -> BookPayload:
    """Validate raw request data into a BookPayload.

    Raises:
        BookValidationError: if the payload is not an object or a field is
            missing, empty or malformed.
    """
    if isinstance(payload, BookPayload):
        return payload
    if not isinstance(payload, Mapping):
        raise BookValidationError("Invalid input!", errors=[{"msg": "expected an object"}])

    try:
        return BookPayload.model_validate(dict(payload))
    except ValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "msg": err["msg"],
            }
            for err in e.errors()
        ]
        raise BookValidationError("Invalid input!", errors=errors) from e


class BookService:
    def __init__(self, repository: BookRepository):
        self._repository = repository

    def create_book(self, payload: Any, ctx: Deadline | None = None) -> Book:
        """Validate and persist a new book.

        Returns:
            The stored book including its assigned id.

        Raises:
            BookValidationError: bad payload
            ConflictError: the title is already taken
            StorageError: the store failed or timed out
        """
        data = parse_payload(payload)

        if self._repository.title_exists(data.title, ctx=ctx):
            logger.warning("Rejected create: title {!r} already exists", data.title)
            raise ConflictError(data.title)

        try:
            book_id = self._repository.insert(
                data.title, data.author, data.published_at, ctx=ctx
            )
        except DuplicateTitleError as e:
            logger.warning("Title {!r} was taken between check and insert", data.title)
            raise ConflictError(data.title) from e

        return Book(
            id=book_id,
            title=data.title,
            author=data.author,
            published_at=data.published_at,
        )

    def get_book(self, book_id: int, ctx: Deadline | None = None) -> Book:
        return self._repository.find_by_id(book_id, ctx=ctx)

    def list_books(self, ctx: Deadline | None = None) -> list[Book]:
        return self._repository.find_all(ctx=ctx)

    def update_book(self, book_id: int, payload: Any, ctx: Deadline | None = None) -> int:
        """Replace title, author and publication date of ``book_id``.

        The title check excludes the book itself, so resubmitting its own
        title is not a conflict. A missing id surfaces from storage as
        NoRowsAffectedError.
        """
        data = parse_payload(payload)

        if self._repository.title_exists(data.title, exclude_id=book_id, ctx=ctx):
            logger.warning(
                "Rejected update of {}: title {!r} belongs to another book",
                book_id,
                data.title,
            )
            raise ConflictError(
                data.title, "Another book with the same title already exists!"
            )

        try:
            return self._repository.update(
                book_id, data.title, data.author, data.published_at, ctx=ctx
            )
        except DuplicateTitleError as e:
            logger.warning("Title {!r} was taken between check and update", data.title)
            raise ConflictError(
                data.title, "Another book with the same title already exists!"
            ) from e

    def delete_book(self, book_id: int, ctx: Deadline | None = None) -> None:
        if not self._repository.id_exists(book_id, ctx=ctx):
            raise BookNotFoundError(book_id)
        self._repository.delete(book_id, ctx=ctx)
