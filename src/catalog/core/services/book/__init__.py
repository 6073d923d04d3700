"""Book catalog use cases."""

from .book_service import BookService, parse_payload

__all__ = ["BookService", "parse_payload"]
