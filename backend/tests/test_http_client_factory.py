from __future__ import annotations

import httpx
import pytest

from modular_monolith.errors import InvalidArgumentError
from modular_monolith.hosting.builder import create_builder
from modular_monolith.hosting.http_clients import HttpClientFactory, configure_http_client_defaults
from modular_monolith.hosting.resilience import CircuitBreaker, StandardResilienceOptions
from modular_monolith.hosting.service_defaults import add_service_defaults


def _factory(make_settings, **settings) -> HttpClientFactory:
    app = add_service_defaults(create_builder(make_settings(**settings))).build()
    return app.services.get_required_service(HttpClientFactory)


def test_default_client_resolves_logical_service_names(make_settings):
    factory = _factory(make_settings, services={"catalog": {"http": "http://localhost:5001"}})
    seen = []

    def upstream(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=[])

    with factory.create_client("catalog", transport=httpx.MockTransport(upstream)) as client:
        r = client.get("http://catalog/api/books")

    assert r.status_code == 200
    assert seen == ["http://localhost:5001/api/books"]


def test_client_kwargs_pass_through(make_settings):
    factory = _factory(make_settings)

    with factory.create_client(
        transport=httpx.MockTransport(lambda r: httpx.Response(204)),
        base_url="http://example.com",
    ) as client:
        assert client.get("/ping").status_code == 204
        assert client.base_url == httpx.URL("http://example.com")


def test_circuit_breaker_is_shared_per_client_name(make_settings):
    factory = _factory(make_settings)
    options = StandardResilienceOptions()

    a = factory.circuit_breaker("catalog", options)

    assert isinstance(a, CircuitBreaker)
    assert factory.circuit_breaker("catalog", options) is a
    assert factory.circuit_breaker("orders", options) is not a


def test_defaults_apply_in_registration_order(make_settings):
    builder = create_builder(make_settings())
    configure_http_client_defaults(builder.services, lambda http: http.add_handler("first", lambda inner: inner))
    configure_http_client_defaults(builder.services, lambda http: http.add_handler("second", lambda inner: inner))

    factory = builder.build().services.get_required_service(HttpClientFactory)

    assert factory.create_builder().handler_names == ["first", "second"]
    assert len(builder.services.descriptors_for(HttpClientFactory)) == 1


def test_first_handler_is_outermost(make_settings):
    builder = create_builder(make_settings())
    calls = []

    class Tap(httpx.BaseTransport):
        def __init__(self, name, inner):
            self.name = name
            self.inner = inner

        def handle_request(self, request):
            calls.append(self.name)
            return self.inner.handle_request(request)

    configure_http_client_defaults(
        builder.services,
        lambda http: http.add_handler("outer", lambda inner: Tap("outer", inner)).add_handler(
            "inner", lambda inner: Tap("inner", inner)
        ),
    )
    factory = builder.build().services.get_required_service(HttpClientFactory)

    with factory.create_client(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
        client.get("http://example.com/")

    assert calls == ["outer", "inner"]


def test_configure_http_client_defaults_requires_arguments(make_settings):
    with pytest.raises(InvalidArgumentError):
        configure_http_client_defaults(None, lambda http: None)
    with pytest.raises(InvalidArgumentError):
        configure_http_client_defaults(create_builder(make_settings()).services, None)
