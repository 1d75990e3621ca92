from __future__ import annotations

from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from modular_monolith.errors import InvalidArgumentError
from modular_monolith.hosting.builder import create_builder
from modular_monolith.hosting.provider import ServiceProvider
from modular_monolith.hosting.registry import Lifetime, ServiceRegistry
from modular_monolith.modules.book_catalog import (
    BookDto,
    BookService,
    CatalogBookService,
    add_book_service,
    map_book_endpoints,
)

DDD_ID = "0b8a3c62-5d1e-4f0a-9a57-2f3f6c7d9e01"


def test_add_book_service_requires_registry():
    with pytest.raises(InvalidArgumentError):
        add_book_service(None)


def test_add_book_service_binds_scoped_contract_and_returns_registry():
    services = ServiceRegistry()

    out = add_book_service(services)

    assert out is services
    (descriptor,) = services.descriptors_for(BookService)
    assert descriptor.implementation is CatalogBookService
    assert descriptor.lifetime is Lifetime.SCOPED


def test_add_book_service_twice_appends_second_binding():
    services = add_book_service(add_book_service(ServiceRegistry()))

    assert len(services.descriptors_for(BookService)) == 2


def test_book_service_is_shared_within_a_scope_and_fresh_across_scopes():
    provider = ServiceProvider(add_book_service(ServiceRegistry()))

    with provider.create_scope() as first:
        a1 = first.get_required_service(BookService)
        a2 = first.get_required_service(BookService)
    with provider.create_scope() as second:
        b = second.get_required_service(BookService)

    assert a1 is a2
    assert a1 is not b


def test_book_dto_is_immutable():
    book = BookDto(id=UUID(DDD_ID), title="Domain-Driven Design", author="Eric Evans")

    with pytest.raises(ValidationError):
        book.title = "Something else"


def test_catalog_lookup():
    svc = CatalogBookService()

    assert svc.get_book(UUID(DDD_ID)).author == "Eric Evans"
    assert svc.get_book(UUID(int=0)) is None
    titles = [b.title for b in svc.list_books()]
    assert titles == sorted(titles)


def _client(make_settings) -> TestClient:
    builder = create_builder(make_settings())
    add_book_service(builder.services)
    app = map_book_endpoints(builder.build())
    return TestClient(app.api)


def test_book_endpoints(make_settings):
    client = _client(make_settings)

    r = client.get("/api/books")
    assert r.status_code == 200
    assert len(r.json()) == 3

    r = client.get(f"/api/books/{DDD_ID}")
    assert r.status_code == 200
    assert r.json() == {"id": DDD_ID, "title": "Domain-Driven Design", "author": "Eric Evans"}


def test_unknown_book_is_problem_json(make_settings):
    client = _client(make_settings)

    r = client.get(f"/api/books/{UUID(int=0)}")
    assert r.status_code == 404
    assert r.headers.get("content-type", "").startswith("application/problem+json")
    assert r.json()["status"] == 404


def test_malformed_book_id_is_validation_problem(make_settings):
    client = _client(make_settings)

    r = client.get("/api/books/not-a-uuid")
    assert r.status_code == 422
    body = r.json()
    assert body["title"] == "Validation Failed"
    assert body["errors"]
