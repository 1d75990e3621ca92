from __future__ import annotations

from .access_log import AccessLogMiddleware
from .request_context import RequestContextMiddleware
from .request_scope import ServiceScopeMiddleware, inject, request_services

__all__ = [
    "AccessLogMiddleware",
    "RequestContextMiddleware",
    "ServiceScopeMiddleware",
    "inject",
    "request_services",
]
