"""FastAPI dependency implementations."""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Request

from src.catalog.api.http.app_data import ApplicationDependencies
from src.catalog.core.services import DbSessionService, Deadline
from src.catalog.core.services.book import BookService
from src.catalog.runtime.context import get_config


def get_database_service(request: Request) -> DbSessionService:
    """Get the database session service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.database_service


def get_book_service(request: Request) -> BookService:
    """Get the book service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.book_service


def get_request_deadline() -> Iterator[Deadline]:
    """Per-request deadline, cancelled once the request is finished.

    Cancelling interrupts any storage call still running on behalf of the
    request and hands its connection back to the pool.
    """
    deadline = Deadline.after(get_config().app.request_timeout_seconds)
    try:
        yield deadline
    finally:
        deadline.cancel()
