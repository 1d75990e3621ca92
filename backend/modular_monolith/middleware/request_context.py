from __future__ import annotations

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..observability.context import request_id_var

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128


def _inbound_request_id(request: Request) -> str | None:
    value = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return None
    return value


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Per-request logging context.

    The request id is taken from `X-Request-Id` when it is a sane value and
    generated otherwise. It lands on `request.state.request_id`, in the
    request-id contextvar, and back on the response. Method and path are bound
    as structlog scopes for everything logged while the request runs.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = _inbound_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            with structlog.contextvars.bound_contextvars(
                http_method=request.method.upper(),
                http_path=request.url.path,
            ):
                response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
