"""Data-access layer for books.

Every method is one short transaction bounded by its own deadline, derived
from the caller's. Driver failures leave this module only as
``StorageError`` subtypes, or ``BookNotFoundError`` for a missing row.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date

from loguru import logger
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlmodel import Session, select

from src.catalog.core.errors import (
    BookNotFoundError,
    CatalogError,
    DuplicateTitleError,
    NoRowsAffectedError,
    StorageError,
    StorageTimeoutError,
)
from src.catalog.core.services.database.db_session import DbSessionService
from src.catalog.core.services.database.deadline import Deadline
from src.catalog.entities.service.book.entity import Book
from src.catalog.entities.service.book.table import BookTable

# PostgreSQL SQLSTATE for query_canceled (statement_timeout or cancel request)
_PG_QUERY_CANCELED = "57014"


def _to_entity(row: BookTable) -> Book:
    return Book(
        id=row.id,
        title=row.title_name,
        author=row.author_name,
        published_at=row.published_at,
    )


def _is_timeout(exc: SQLAlchemyError, deadline: Deadline) -> bool:
    if deadline.done or isinstance(exc, PoolTimeoutError):
        return True
    if not isinstance(exc, OperationalError):
        return False
    return getattr(exc.orig, "pgcode", None) == _PG_QUERY_CANCELED


class BookRepository:
    """Storage gateway for book rows."""

    def __init__(self, database_service: DbSessionService) -> None:
        self._db = database_service

    @contextmanager
    def _operation(
        self, name: str, ctx: Deadline | None, title: str | None = None
    ) -> Iterator[Session]:
        deadline = Deadline.derive(ctx, self._db.query_timeout)
        try:
            with self._db.session_scope(deadline) as session:
                yield session
        except CatalogError:
            raise
        except IntegrityError as exc:
            if title is None:
                raise StorageError(f"{name} failed: integrity error") from exc
            logger.warning("Unique constraint rejected {} for title {!r}", name, title)
            raise DuplicateTitleError(title) from exc
        except SQLAlchemyError as exc:
            if _is_timeout(exc, deadline):
                logger.error("{} exceeded its deadline", name)
                raise StorageTimeoutError(f"{name} timed out") from exc
            logger.opt(exception=exc).error("{} failed", name)
            raise StorageError(f"{name} failed") from exc
        except (ValueError, TypeError) as exc:
            # Result processors and entity validation reject malformed stored values
            logger.opt(exception=exc).error("{} could not decode a row", name)
            raise StorageError(f"{name} failed: undecodable row") from exc

    def title_exists(
        self, title: str, exclude_id: int | None = None, ctx: Deadline | None = None
    ) -> bool:
        """True if any book other than ``exclude_id`` has exactly this title."""
        statement = select(BookTable.id).where(BookTable.title_name == title)
        if exclude_id is not None:
            statement = statement.where(BookTable.id != exclude_id)

        with self._operation("title_exists", ctx) as session:
            return session.exec(statement.limit(1)).first() is not None

    def id_exists(self, book_id: int, ctx: Deadline | None = None) -> bool:
        statement = select(BookTable.id).where(BookTable.id == book_id)
        with self._operation("id_exists", ctx) as session:
            return session.exec(statement).first() is not None

    def insert(
        self, title: str, author: str, published_at: date, ctx: Deadline | None = None
    ) -> int:
        """Insert a row and return its storage-assigned id."""
        row = BookTable(title_name=title, author_name=author, published_at=published_at)
        with self._operation("insert", ctx, title=title) as session:
            session.add(row)
            session.flush()
            book_id = row.id

        logger.info("Inserted book {} with title {!r}", book_id, title)
        return book_id

    def find_by_id(self, book_id: int, ctx: Deadline | None = None) -> Book:
        with self._operation("find_by_id", ctx) as session:
            row = session.get(BookTable, book_id)
            if row is None:
                raise BookNotFoundError(book_id)
            return _to_entity(row)

    def find_all(self, ctx: Deadline | None = None) -> list[Book]:
        """Every stored book, fully read before returning.

        A failure while scanning any row fails the whole call.
        """
        statement = select(BookTable).order_by(BookTable.id)
        with self._operation("find_all", ctx) as session:
            rows = session.exec(statement).all()
            return [_to_entity(row) for row in rows]

    def update(
        self,
        book_id: int,
        title: str,
        author: str,
        published_at: date,
        ctx: Deadline | None = None,
    ) -> int:
        """Overwrite every mutable field of ``book_id`` and return the id."""
        statement = (
            update(BookTable)
            .where(BookTable.id == book_id)
            .values(title_name=title, author_name=author, published_at=published_at)
        )
        with self._operation("update", ctx, title=title) as session:
            result = session.connection().execute(statement)
            if result.rowcount == 0:
                raise NoRowsAffectedError(book_id)

        logger.info("Updated book {}", book_id)
        return book_id

    def delete(self, book_id: int, ctx: Deadline | None = None) -> None:
        statement = delete(BookTable).where(BookTable.id == book_id)
        with self._operation("delete", ctx) as session:
            result = session.connection().execute(statement)
            if result.rowcount == 0:
                raise NoRowsAffectedError(book_id)

        logger.info("Deleted book {}", book_id)
