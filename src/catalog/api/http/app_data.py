from dataclasses import dataclass

from src.catalog.core.services import DbSessionService
from src.catalog.core.services.book import BookService
from src.catalog.entities.service.book import BookRepository


@dataclass
class ApplicationDependencies:
    database_service: DbSessionService
    book_repository: BookRepository
    book_service: BookService

    @classmethod
    def from_database(cls, database_service: DbSessionService) -> "ApplicationDependencies":
        """Wire the repository and service on top of an existing engine."""
        repository = BookRepository(database_service)
        return cls(
            database_service=database_service,
            book_repository=repository,
            book_service=BookService(repository),
        )
