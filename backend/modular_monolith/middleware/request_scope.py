from __future__ import annotations

from typing import TYPE_CHECKING, Callable, TypeVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from ..hosting.provider import ServiceProvider, ServiceScope

T = TypeVar("T")


class ServiceScopeMiddleware(BaseHTTPMiddleware):
    """
    Opens one service scope per request (request.state.services) and closes it
    once the response has been produced.
    """

    def __init__(self, app, *, provider: "ServiceProvider"):
        super().__init__(app)
        self._provider = provider

    async def dispatch(self, request: Request, call_next):
        with self._provider.create_scope() as scope:
            request.state.services = scope
            return await call_next(request)


def request_services(request: Request) -> "ServiceScope":
    scope = getattr(request.state, "services", None)
    if scope is None:
        raise RuntimeError("no service scope on request; is ServiceScopeMiddleware installed?")
    return scope


def inject(contract: type[T]) -> Callable[[Request], T]:
    """
    FastAPI dependency resolving `contract` from the current request scope:

        def handler(books: BookService = Depends(inject(BookService))): ...
    """

    def _resolve(request: Request) -> T:
        return request_services(request).get_required_service(contract)

    _resolve.__name__ = f"inject_{contract.__name__}"
    return _resolve
