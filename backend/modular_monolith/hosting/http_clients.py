"""
Outbound HTTP clients created from the registry.

`configure_http_client_defaults` records callbacks that run against every
client the factory creates. Callbacks add transport handlers; the first handler
added ends up outermost (closest to the caller).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from ..errors import ServiceResolutionError, require_argument
from ..observability.logging import get_logger
from .discovery import ServiceDiscoveryTransport, ServiceEndpointResolver
from .provider import ServiceProvider
from .registry import ServiceRegistry
from .resilience import CircuitBreaker, ResilienceTransport, StandardResilienceOptions

log = get_logger("http_clients")

TransportHandler = Callable[[httpx.BaseTransport], httpx.BaseTransport]


@dataclass(frozen=True)
class HttpClientDefaults:
    configure: Callable[["HttpClientBuilder"], Any]


class HttpClientBuilder:
    def __init__(self, name: str, factory: "HttpClientFactory"):
        self.name = name
        self._factory = factory
        self._handlers: list[tuple[str, TransportHandler]] = []

    @property
    def handler_names(self) -> list[str]:
        return [n for n, _ in self._handlers]

    def add_handler(self, name: str, handler: TransportHandler) -> "HttpClientBuilder":
        self._handlers.append((name, handler))
        return self

    def add_standard_resilience_handler(
        self, options: StandardResilienceOptions | None = None
    ) -> "HttpClientBuilder":
        opts = options or StandardResilienceOptions()
        breaker = self._factory.circuit_breaker(self.name, opts)
        return self.add_handler(
            "resilience",
            lambda inner: ResilienceTransport(inner, name=self.name, options=opts, breaker=breaker),
        )

    def add_service_discovery(self) -> "HttpClientBuilder":
        resolver = self._factory.provider.get_service(ServiceEndpointResolver)
        if resolver is None:
            raise ServiceResolutionError(
                "service discovery is not registered; call add_service_discovery(services) "
                "before configuring http clients to use it"
            )
        return self.add_handler("service_discovery", lambda inner: ServiceDiscoveryTransport(inner, resolver))

    def build_transport(self, inner: httpx.BaseTransport) -> httpx.BaseTransport:
        transport = inner
        for _, handler in reversed(self._handlers):
            transport = handler(transport)
        return transport


class HttpClientFactory:
    def __init__(self, provider: ServiceProvider):
        self.provider = provider
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def circuit_breaker(self, name: str, options: StandardResilienceOptions) -> CircuitBreaker:
        # One breaker per logical client name.
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, options.circuit_breaker)
                self._breakers[name] = breaker
            return breaker

    def create_builder(self, name: str = "default") -> HttpClientBuilder:
        builder = HttpClientBuilder(name, self)
        for defaults in self.provider.get_services(HttpClientDefaults):
            defaults.configure(builder)
        return builder

    def create_client(
        self,
        name: str = "default",
        *,
        transport: httpx.BaseTransport | None = None,
        **client_kwargs: Any,
    ) -> httpx.Client:
        builder = self.create_builder(name)
        inner = transport or httpx.HTTPTransport()
        log.debug("http_client_created", client=name, handlers=builder.handler_names)
        return httpx.Client(transport=builder.build_transport(inner), **client_kwargs)


def _create_http_client_factory(provider: ServiceProvider) -> HttpClientFactory:
    return HttpClientFactory(provider)


def configure_http_client_defaults(
    services: ServiceRegistry,
    configure: Callable[[HttpClientBuilder], Any],
) -> ServiceRegistry:
    require_argument(services, "services")
    require_argument(configure, "configure")
    services.add_instance(HttpClientDefaults, HttpClientDefaults(configure))
    return services.try_add_singleton(HttpClientFactory, _create_http_client_factory)
