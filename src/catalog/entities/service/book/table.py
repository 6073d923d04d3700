"""Book database table model."""

from datetime import date

from sqlalchemy import Column, Date, Integer, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from src.catalog.entities.service.book.entity import AUTHOR_MAX_LENGTH, TITLE_MAX_LENGTH


class BookTable(SQLModel, table=True):
    """Database persistence model for books.

    The unique constraint on ``title_name`` is the authoritative guard
    against duplicate titles; the service-level existence check only
    narrows the race window. ``sqlite_autoincrement`` keeps SQLite from
    reusing the id of a deleted last row.
    """

    __tablename__ = "books"
    __table_args__ = (
        UniqueConstraint("title_name", name="uq_books_title_name"),
        {"sqlite_autoincrement": True},
    )

    id: int | None = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True),
    )
    title_name: str = Field(
        sa_column=Column(String(TITLE_MAX_LENGTH), nullable=False)
    )
    author_name: str = Field(
        sa_column=Column(String(AUTHOR_MAX_LENGTH), nullable=False)
    )
    published_at: date = Field(sa_column=Column(Date, nullable=False))
