from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from ...errors import require_argument
from ...middleware.request_scope import inject
from .book_dto import BookDto
from .book_service import BookService

router = APIRouter(tags=["books"])


@router.get("", response_model=list[BookDto])
def list_books(books: BookService = Depends(inject(BookService))):
    return books.list_books()


@router.get("/{book_id}", response_model=BookDto)
def get_book(book_id: UUID, books: BookService = Depends(inject(BookService))):
    book = books.get_book(book_id)
    if book is None:
        raise HTTPException(status_code=404, detail=f"Book {book_id} not found")
    return book


def map_book_endpoints(app, *, prefix: str = "/api/books"):
    require_argument(app, "app")
    app.include_router(router, prefix=prefix)
    return app
