"""Book API router with CRUD operations.

Handlers are plain functions so FastAPI runs each request on its worker
thread pool. Failures are raised as catalog errors and rendered by the
application's exception handlers.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from src.catalog.api.http.deps import get_book_service, get_request_deadline
from src.catalog.core.services import Deadline
from src.catalog.core.services.book import BookService

router = APIRouter(tags=["books"])


@router.post("/book", status_code=status.HTTP_201_CREATED)
def create_book(
    payload: Any = Body(None),
    service: BookService = Depends(get_book_service),
    deadline: Deadline = Depends(get_request_deadline),
) -> dict[str, Any]:
    """Create a new book."""
    book = service.create_book(payload, ctx=deadline)
    return {"book": book.to_response()}


@router.get("/book/{book_id}")
def get_book(
    book_id: int,
    service: BookService = Depends(get_book_service),
    deadline: Deadline = Depends(get_request_deadline),
) -> dict[str, Any]:
    """Get a book by ID."""
    book = service.get_book(book_id, ctx=deadline)
    return {"book": book.to_response()}


@router.get("/books")
def list_books(
    service: BookService = Depends(get_book_service),
    deadline: Deadline = Depends(get_request_deadline),
) -> dict[str, Any]:
    """List all books."""
    books = service.list_books(ctx=deadline)
    return {"books": [book.to_response() for book in books]}


@router.put("/book/{book_id}")
def update_book(
    book_id: int,
    payload: Any = Body(None),
    service: BookService = Depends(get_book_service),
    deadline: Deadline = Depends(get_request_deadline),
) -> dict[str, Any]:
    """Update a book."""
    updated_id = service.update_book(book_id, payload, ctx=deadline)
    return {"message": "Book updated successfully", "updated_id": updated_id}


@router.delete("/book/{book_id}")
def delete_book(
    book_id: int,
    service: BookService = Depends(get_book_service),
    deadline: Deadline = Depends(get_request_deadline),
) -> dict[str, str]:
    """Delete a book."""
    service.delete_book(book_id, ctx=deadline)
    return {"message": "Book deleted successfully"}
