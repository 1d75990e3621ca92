from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID

from .book_dto import BookDto

# Read-only seed catalogue; the module does no persistence.
_SEED_BOOKS: tuple[BookDto, ...] = (
    BookDto(
        id=UUID("0b8a3c62-5d1e-4f0a-9a57-2f3f6c7d9e01"),
        title="Domain-Driven Design",
        author="Eric Evans",
    ),
    BookDto(
        id=UUID("6f1d2e44-8b3c-4d9a-a1e2-7c5b4a3f2e10"),
        title="Patterns of Enterprise Application Architecture",
        author="Martin Fowler",
    ),
    BookDto(
        id=UUID("c3e9f7a1-2b4d-4c6e-8f0a-1d2e3f4a5b62"),
        title="Release It!",
        author="Michael T. Nygard",
    ),
)


class BookService(ABC):
    @abstractmethod
    def list_books(self) -> list[BookDto]: ...

    @abstractmethod
    def get_book(self, book_id: UUID) -> BookDto | None: ...


class CatalogBookService(BookService):
    def __init__(self, books: tuple[BookDto, ...] = _SEED_BOOKS):
        self._books = {b.id: b for b in books}

    def list_books(self) -> list[BookDto]:
        return sorted(self._books.values(), key=lambda b: b.title)

    def get_book(self, book_id: UUID) -> BookDto | None:
        return self._books.get(book_id)
