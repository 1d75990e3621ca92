"""
BookCatalog module.

Owns the book read model and its lookup service. The host only sees
`add_book_service` (service registration) and `map_book_endpoints` (HTTP
surface); no other module imports from here.
"""

from __future__ import annotations

from .book_dto import BookDto
from .book_service import BookService, CatalogBookService
from .registration import add_book_service
from .router import map_book_endpoints

__all__ = [
    "BookDto",
    "BookService",
    "CatalogBookService",
    "add_book_service",
    "map_book_endpoints",
]
