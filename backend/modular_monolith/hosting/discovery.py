"""
Configuration-backed service discovery for outbound HTTP calls.

Logical URIs name a service instead of a host:

    http://catalog                  -> endpoint "http" of service "catalog"
    https+http://catalog            -> "https" if configured, else "http"
    http://_dashboard.catalog       -> named endpoint "dashboard"

Endpoints come from settings (`SERVICES__CATALOG__HTTPS=https://localhost:7001`).
A host that is not a configured service passes through unchanged.
"""

from __future__ import annotations

import itertools
import threading

import httpx

from ..errors import ServiceResolutionError, require_argument
from ..observability.logging import get_logger
from ..settings import Settings
from .registry import ServiceRegistry

log = get_logger("service_discovery")


class ServiceEndpointResolver:
    def __init__(self, settings: Settings):
        self._endpoints: dict[str, dict[str, list[str]]] = {}
        for service, named in (settings.services or {}).items():
            self._endpoints[str(service).strip().lower()] = {
                str(name).strip().lower(): [u.strip() for u in str(urls or "").split(",") if u.strip()]
                for name, urls in (named or {}).items()
            }
        self._counters: dict[tuple[str, str], itertools.count] = {}
        self._lock = threading.Lock()

    @property
    def service_names(self) -> list[str]:
        return sorted(self._endpoints)

    def _next_index(self, key: tuple[str, str]) -> int:
        with self._lock:
            counter = self._counters.setdefault(key, itertools.count())
            return next(counter)

    def resolve(self, url: httpx.URL | str) -> httpx.URL:
        url = httpx.URL(url)
        host = url.host or ""
        endpoint_name: str | None = None
        service = host
        if host.startswith("_") and "." in host:
            endpoint_name, _, service = host[1:].partition(".")

        named = self._endpoints.get(service.lower())
        if named is None:
            return url

        schemes = [s for s in url.scheme.split("+") if s]
        candidates = [endpoint_name.lower()] if endpoint_name else [s.lower() for s in schemes]
        for name in candidates:
            urls = named.get(name)
            if not urls:
                continue
            chosen = httpx.URL(urls[self._next_index((service, name)) % len(urls)])
            if not endpoint_name and chosen.scheme not in schemes:
                # The endpoint's own scheme wins.
                log.debug("service_endpoint_scheme_mismatch", service=service, requested=url.scheme, resolved=chosen.scheme)
            return url.copy_with(scheme=chosen.scheme, host=chosen.host, port=chosen.port)

        raise ServiceResolutionError(
            f"service '{service}' has no endpoint matching {candidates} (configured: {sorted(named)})"
        )


class ServiceDiscoveryTransport(httpx.BaseTransport):
    """Rewrites logical service URIs to concrete endpoints before sending."""

    def __init__(self, inner: httpx.BaseTransport, resolver: ServiceEndpointResolver):
        self._inner = inner
        self._resolver = resolver

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        resolved = self._resolver.resolve(request.url)
        if resolved != request.url:
            request.url = resolved
            request.headers["Host"] = resolved.netloc.decode("ascii")
        return self._inner.handle_request(request)

    def close(self) -> None:
        self._inner.close()


def add_service_discovery(services: ServiceRegistry) -> ServiceRegistry:
    require_argument(services, "services")
    return services.try_add_singleton(ServiceEndpointResolver)
