from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Callable, Iterable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .middleware.access_log import AccessLogMiddleware
from .middleware.request_context import RequestContextMiddleware
from .middleware.request_scope import ServiceScopeMiddleware
from .observability.logging import get_logger
from .problem_details import problem_response

if TYPE_CHECKING:
    from .hosting.builder import HostEnvironment
    from .hosting.provider import ServiceProvider


def create_api(
    *,
    provider: "ServiceProvider",
    environment: "HostEnvironment",
    on_shutdown: Iterable[Callable[[], None]] = (),
) -> FastAPI:
    shutdown_hooks = list(on_shutdown)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        log = get_logger("shutdown")
        for hook in shutdown_hooks:
            try:
                hook()
            except Exception:
                log.exception("shutdown_hook_failed", hook=getattr(hook, "__qualname__", str(hook)))

    app = FastAPI(
        title="Modular Monolith",
        version="1.0.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.environment = environment

    # Middlewares (order matters; last added is outermost)
    # One service scope per request; innermost so access logs cover scope disposal.
    app.add_middleware(ServiceScopeMiddleware, provider=provider)
    # Access logs (structured JSON)
    app.add_middleware(AccessLogMiddleware, exclude_paths={"/alive"})
    # Outermost: request context (request-id) wraps everything.
    app.add_middleware(RequestContextMiddleware)

    # Error handlers
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    return app


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    status_code = int(getattr(exc, "status_code", 500) or 500)
    detail = getattr(exc, "detail", None)

    title: str | None = None
    extensions: dict | None = None
    safe_detail: str | None = None

    if isinstance(detail, dict):
        extensions = detail
        if isinstance(detail.get("error"), str):
            title = detail.get("error")
        msg = detail.get("message")
        if isinstance(msg, str) and msg.strip():
            safe_detail = msg.strip()
    elif detail is not None:
        safe_detail = str(detail)

    if status_code == 404:
        title = title or "Not Found"
        safe_detail = safe_detail or "Route not found"

    return problem_response(
        request=request,
        status_code=status_code,
        title=title,
        detail=safe_detail,
        extensions=extensions,
    )


def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    errors: list[dict[str, object]] = []
    for e in exc.errors():
        loc = e.get("loc") or ()
        loc_path = ".".join([str(x) for x in loc if x != "body"])
        errors.append(
            {
                "location": list(loc) if isinstance(loc, (list, tuple)) else [],
                "path": loc_path,
                "message": e.get("msg", "Invalid value"),
                "type": e.get("type"),
            }
        )
    return problem_response(
        request=request,
        status_code=422,
        title="Validation Failed",
        detail="Request validation failed",
        errors=errors,
    )


def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    # Full traceback goes to the logs; the HTTP response stays generic in production.
    rid = getattr(getattr(request, "state", None), "request_id", None)
    get_logger("unhandled").exception(
        "unhandled_exception",
        request_id=str(rid) if rid else None,
        http_method=str(getattr(request, "method", "") or "").upper() or None,
        path=str(getattr(getattr(request, "url", None), "path", "") or ""),
        error_type=type(exc).__name__,
    )
    return problem_response(
        request=request,
        status_code=500,
        title="Internal Server Error",
        detail=str(exc) if exc else None,
    )
