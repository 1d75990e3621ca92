from __future__ import annotations

import httpx
import pytest

from modular_monolith.errors import ServiceResolutionError
from modular_monolith.hosting.discovery import (
    ServiceDiscoveryTransport,
    ServiceEndpointResolver,
    add_service_discovery,
)
from modular_monolith.hosting.registry import ServiceRegistry
from modular_monolith.settings import Settings


@pytest.fixture
def resolver(make_settings) -> ServiceEndpointResolver:
    return ServiceEndpointResolver(
        make_settings(
            services={
                "catalog": {
                    "http": "http://localhost:5001",
                    "https": "https://localhost:7001",
                    "dashboard": "http://localhost:9000",
                },
                "orders": {"http": "http://10.0.0.1:8080, http://10.0.0.2:8080"},
                "legacy": {"http": "http://localhost:5005"},
            }
        )
    )


def test_plain_scheme_picks_matching_endpoint(resolver):
    assert str(resolver.resolve("http://catalog/api/books?page=2")) == "http://localhost:5001/api/books?page=2"


def test_scheme_preference_uses_first_configured(resolver):
    assert str(resolver.resolve("https+http://catalog/api")) == "https://localhost:7001/api"
    assert str(resolver.resolve("https+http://legacy/api")) == "http://localhost:5005/api"


def test_named_endpoint(resolver):
    assert str(resolver.resolve("http://_dashboard.catalog/metrics")) == "http://localhost:9000/metrics"


def test_round_robin_across_instances(resolver):
    hosts = [resolver.resolve("http://orders/x").host for _ in range(4)]

    assert hosts == ["10.0.0.1", "10.0.0.2", "10.0.0.1", "10.0.0.2"]


def test_unknown_host_passes_through(resolver):
    url = httpx.URL("https://example.com/a")

    assert resolver.resolve(url) == url


def test_service_without_matching_endpoint_fails(resolver):
    with pytest.raises(ServiceResolutionError, match="legacy"):
        resolver.resolve("https://legacy/")
    with pytest.raises(ServiceResolutionError):
        resolver.resolve("http://_grpc.catalog/")


def test_service_names_are_case_insensitive(make_settings):
    resolver = ServiceEndpointResolver(make_settings(services={"Catalog": {"HTTP": "http://localhost:5001"}}))

    assert resolver.service_names == ["catalog"]
    assert resolver.resolve("http://CATALOG/").port == 5001


def test_endpoints_from_environment(monkeypatch):
    monkeypatch.setenv("SERVICES__CATALOG__HTTP", "http://localhost:5001")

    resolver = ServiceEndpointResolver(Settings())

    assert resolver.service_names == ["catalog"]
    assert str(resolver.resolve("http://catalog/")) == "http://localhost:5001/"


def test_transport_rewrites_url_and_host_header(resolver):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((str(request.url), request.headers["host"]))
        return httpx.Response(200, json={"ok": True})

    transport = ServiceDiscoveryTransport(httpx.MockTransport(handler), resolver)
    with httpx.Client(transport=transport) as client:
        r = client.get("http://catalog/api/books")

    assert r.status_code == 200
    assert seen == [("http://localhost:5001/api/books", "localhost:5001")]


def test_add_service_discovery_registers_once():
    services = add_service_discovery(add_service_discovery(ServiceRegistry()))

    assert len(services.descriptors_for(ServiceEndpointResolver)) == 1


def test_unset_environment_has_no_services():
    settings = Settings()

    assert settings.services == {}
    assert settings.log_level == "INFO"
    assert ServiceEndpointResolver(settings).service_names == []
