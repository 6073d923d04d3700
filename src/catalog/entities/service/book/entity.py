"""Entity: Book."""

from datetime import date, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

TITLE_MAX_LENGTH = 255
AUTHOR_MAX_LENGTH = 255


class Book(BaseModel):
    """Book entity representing a persisted catalog record.

    The id is assigned by storage; a Book is only built from a stored row.
    Serialized with ``by_alias=True`` it uses the catalog's wire names.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Storage-assigned identifier")
    title: str = Field(serialization_alias="title_name", description="Unique title")
    author: str = Field(serialization_alias="author_name", description="Author name")
    published_at: date = Field(description="Publication date")

    def to_response(self) -> dict[str, Any]:
        """JSON-ready representation using the wire field names."""
        return self.model_dump(mode="json", by_alias=True)


class BookPayload(BaseModel):
    """Client-supplied fields for creating or updating a book.

    Accepts both the catalog wire names (``title_name``, ``author_name``,
    ``published_at``) and the short names. Unknown keys such as ``id`` are
    ignored. Strings are kept exactly as sent so title comparison stays exact.
    """

    model_config = ConfigDict(extra="ignore")

    title: str = Field(
        validation_alias=AliasChoices("title_name", "title"),
        max_length=TITLE_MAX_LENGTH,
    )
    author: str = Field(
        validation_alias=AliasChoices("author_name", "author"),
        max_length=AUTHOR_MAX_LENGTH,
    )
    published_at: date = Field(
        validation_alias=AliasChoices("published_at", "publishedAt"),
    )

    @field_validator("title", "author")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("published_at", mode="before")
    @classmethod
    def _drop_time_component(cls, value: Any) -> Any:
        # Clients often send RFC 3339 timestamps; only the date is stored
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
            except ValueError:
                return value
        return value
