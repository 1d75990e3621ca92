from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from modular_monolith.errors import InvalidArgumentError, RegistryFrozenError
from modular_monolith.hosting.health import (
    HealthCheckResult,
    HealthCheckService,
    HealthStatus,
    add_health_checks,
    tagged,
)
from modular_monolith.hosting.provider import ServiceProvider
from modular_monolith.hosting.registry import ServiceRegistry
from modular_monolith.routers.health import create_health_router


def _service(configure) -> HealthCheckService:
    services = ServiceRegistry()
    configure(add_health_checks(services))
    return ServiceProvider(services).get_required_service(HealthCheckService)


def _boom() -> HealthCheckResult:
    raise ConnectionError("db unreachable")


def test_no_checks_is_healthy():
    report = _service(lambda hc: None).check_health()

    assert report.status is HealthStatus.HEALTHY
    assert report.entries == {}


def test_aggregate_is_worst_status():
    health = _service(
        lambda hc: hc.add_check("a", HealthCheckResult.healthy).add_check("b", HealthCheckResult.degraded)
    )

    assert health.check_health().status is HealthStatus.DEGRADED


def test_throwing_check_is_reported_with_failure_status():
    health = _service(
        lambda hc: hc.add_check("db", _boom)
        .add_check("cache", _boom, failure_status=HealthStatus.DEGRADED)
        .add_check("self", HealthCheckResult.healthy)
    )

    report = health.check_health()

    assert report.status is HealthStatus.UNHEALTHY
    assert report.entries["db"].status is HealthStatus.UNHEALTHY
    assert report.entries["db"].error == "ConnectionError"
    assert report.entries["db"].description == "db unreachable"
    assert report.entries["cache"].status is HealthStatus.DEGRADED
    assert report.entries["self"].status is HealthStatus.HEALTHY


def test_predicate_limits_checks_that_run():
    calls = []

    def db():
        calls.append("db")
        return HealthCheckResult.unhealthy()

    health = _service(lambda hc: hc.add_check("self", HealthCheckResult.healthy, ["live"]).add_check("db", db))

    report = health.check_health(tagged("live"))

    assert report.status is HealthStatus.HEALTHY
    assert list(report.entries) == ["self"]
    assert calls == []


def test_same_name_replaces_earlier_check():
    health = _service(
        lambda hc: hc.add_check("db", HealthCheckResult.unhealthy).add_check("db", HealthCheckResult.healthy)
    )

    assert [r.name for r in health.registrations] == ["db"]
    assert health.check_health().status is HealthStatus.HEALTHY


def test_add_health_checks_reuses_options():
    services = ServiceRegistry()
    add_health_checks(services).add_check("a", HealthCheckResult.healthy)
    add_health_checks(services).add_check("b", HealthCheckResult.healthy)

    health = ServiceProvider(services).get_required_service(HealthCheckService)

    assert [r.name for r in health.registrations] == ["a", "b"]
    assert len(services.descriptors_for(HealthCheckService)) == 1


def test_add_check_validates_arguments():
    builder = add_health_checks(ServiceRegistry())

    with pytest.raises(InvalidArgumentError):
        builder.add_check("a", None)
    with pytest.raises(ValueError):
        builder.add_check("  ", HealthCheckResult.healthy)


def test_add_check_after_freeze_is_rejected():
    services = ServiceRegistry()
    builder = add_health_checks(services)
    services.freeze()

    with pytest.raises(RegistryFrozenError):
        builder.add_check("late", HealthCheckResult.healthy)


@pytest.mark.parametrize(
    "result, status_code, body",
    [
        (HealthCheckResult.healthy, 200, "Healthy"),
        (HealthCheckResult.degraded, 200, "Degraded"),
        (HealthCheckResult.unhealthy, 503, "Unhealthy"),
    ],
)
def test_health_router_maps_status_to_plain_text(result, status_code, body):
    health = _service(lambda hc: hc.add_check("only", result))
    api = FastAPI()
    api.include_router(create_health_router(health, path="/health"))

    r = TestClient(api).get("/health")

    assert r.status_code == status_code
    assert r.text == body
    assert r.headers["content-type"].startswith("text/plain")


def test_health_router_requires_service():
    with pytest.raises(InvalidArgumentError):
        create_health_router(None, path="/health")
