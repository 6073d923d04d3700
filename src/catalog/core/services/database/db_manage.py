"""Table provisioning for the catalog database."""

from loguru import logger
from sqlmodel import SQLModel

from src.catalog.core.services.database.db_session import DbSessionService


class DbManageService:
    def __init__(self, database_service: DbSessionService):
        self._database_service = database_service

    def create_all(self) -> None:
        """Create all database tables that do not exist yet."""
        from src.catalog.entities.service.book import BookTable  # noqa: F401

        SQLModel.metadata.create_all(self._database_service.engine)
        logger.info("Books table checked/created successfully")
