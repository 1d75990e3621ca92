"""
RFC 7807 problem documents for every error response the host emits.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import ORJSONResponse

PROBLEM_JSON = "application/problem+json"


def _default_title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Internal Server Error" if status_code >= 500 else "Error"


def _request_id(request: Request) -> str | None:
    rid = getattr(request.state, "request_id", None) or request.headers.get("x-request-id")
    return str(rid) if rid else None


def _hide_server_detail(request: Request) -> bool:
    # Unknown environment is treated like production.
    environment = getattr(request.app.state, "environment", None)
    return environment is None or environment.is_production


def problem_payload(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    errors: list[dict[str, Any]] | None = None,
    extensions: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": "about:blank",
        "title": title or _default_title(status_code),
        "status": status_code,
        "instance": request.url.path,
    }
    if detail:
        payload["detail"] = detail
    rid = _request_id(request)
    if rid:
        payload["requestId"] = rid
    if errors:
        payload["errors"] = errors
    if extensions:
        # Never merged into the reserved members.
        payload["extensions"] = extensions
    return payload


def problem_response(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    errors: list[dict[str, Any]] | None = None,
    extensions: dict[str, Any] | None = None,
) -> ORJSONResponse:
    status_code = int(status_code)
    if status_code >= 500 and _hide_server_detail(request):
        detail = None
    return ORJSONResponse(
        status_code=status_code,
        content=problem_payload(
            request=request,
            status_code=status_code,
            title=title,
            detail=detail,
            errors=errors,
            extensions=extensions,
        ),
        media_type=PROBLEM_JSON,
    )
