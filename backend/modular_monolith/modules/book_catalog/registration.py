from __future__ import annotations

from ...errors import require_argument
from ...hosting.registry import ServiceRegistry
from .book_service import BookService, CatalogBookService


def add_book_service(services: ServiceRegistry) -> ServiceRegistry:
    """
    Register the BookCatalog module's services (one instance per request scope).
    """
    require_argument(services, "services")
    services.add_scoped(BookService, CatalogBookService)
    return services
