"""Entities module with an entity-centric structure.

Each entity has its own package containing:
- entity.py: Domain model and input validation
- table.py: Database persistence model
- repository.py: Data access layer
"""

from .service.book import Book, BookPayload, BookRepository, BookTable

__all__ = [
    "Book",
    "BookPayload",
    "BookRepository",
    "BookTable",
]
