"""
Health check registrations and evaluation.

Checks are zero-argument callables returning a `HealthCheckResult`. They must be
side-effect free: probe requests can evaluate them concurrently.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from ..errors import RegistryFrozenError, require_argument
from ..observability.logging import get_logger
from .registry import ServiceRegistry

log = get_logger("health")


class HealthStatus(Enum):
    # Ordered worst -> best so min() picks the aggregate.
    UNHEALTHY = 0
    DEGRADED = 1
    HEALTHY = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class HealthCheckResult:
    status: HealthStatus
    description: str | None = None
    data: dict[str, object] = field(default_factory=dict)

    @classmethod
    def healthy(cls, description: str | None = None) -> "HealthCheckResult":
        return cls(HealthStatus.HEALTHY, description)

    @classmethod
    def degraded(cls, description: str | None = None) -> "HealthCheckResult":
        return cls(HealthStatus.DEGRADED, description)

    @classmethod
    def unhealthy(cls, description: str | None = None) -> "HealthCheckResult":
        return cls(HealthStatus.UNHEALTHY, description)


HealthCheck = Callable[[], HealthCheckResult]


@dataclass(frozen=True)
class HealthCheckRegistration:
    name: str
    check: HealthCheck
    tags: frozenset[str] = frozenset()
    failure_status: HealthStatus = HealthStatus.UNHEALTHY


@dataclass(frozen=True)
class HealthReportEntry:
    status: HealthStatus
    description: str | None
    duration_ms: float
    tags: frozenset[str]
    error: str | None = None


@dataclass(frozen=True)
class HealthReport:
    status: HealthStatus
    entries: dict[str, HealthReportEntry]
    total_duration_ms: float


class HealthCheckOptions:
    """Registered checks keyed by name (insertion-ordered)."""

    def __init__(self) -> None:
        self.registrations: dict[str, HealthCheckRegistration] = {}


class HealthChecksBuilder:
    def __init__(self, services: ServiceRegistry, options: HealthCheckOptions):
        self.services = services
        self._options = options

    def add_check(
        self,
        name: str,
        check: HealthCheck,
        tags: Iterable[str] | None = None,
        *,
        failure_status: HealthStatus = HealthStatus.UNHEALTHY,
    ) -> "HealthChecksBuilder":
        require_argument(check, "check")
        key = str(name or "").strip()
        if not key:
            raise ValueError("health check name is required")
        if self.services.frozen:
            raise RegistryFrozenError(f"cannot add health check '{key}' after the application was built")
        if key in self._options.registrations:
            # Same name again replaces the earlier check; names stay unique.
            log.debug("health_check_replaced", name=key)
        self._options.registrations[key] = HealthCheckRegistration(
            name=key,
            check=check,
            tags=frozenset(tags or ()),
            failure_status=failure_status,
        )
        return self


def add_health_checks(services: ServiceRegistry) -> HealthChecksBuilder:
    require_argument(services, "services")
    existing = services.descriptors_for(HealthCheckOptions)
    if existing:
        options = existing[-1].instance
    else:
        options = HealthCheckOptions()
        services.add_instance(HealthCheckOptions, options)
        services.add_singleton(HealthCheckService)
    return HealthChecksBuilder(services, options)


Predicate = Callable[[HealthCheckRegistration], bool]


def tagged(tag: str) -> Predicate:
    return lambda r: tag in r.tags


class HealthCheckService:
    def __init__(self, options: HealthCheckOptions):
        self._options = options

    @property
    def registrations(self) -> list[HealthCheckRegistration]:
        return list(self._options.registrations.values())

    def check_health(self, predicate: Predicate | None = None) -> HealthReport:
        started = time.perf_counter()
        entries: dict[str, HealthReportEntry] = {}
        for reg in self.registrations:
            if predicate is not None and not predicate(reg):
                continue
            entries[reg.name] = self._run(reg)
        status = min((e.status for e in entries.values()), key=lambda s: s.value, default=HealthStatus.HEALTHY)
        return HealthReport(
            status=status,
            entries=entries,
            total_duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
        )

    def _run(self, reg: HealthCheckRegistration) -> HealthReportEntry:
        started = time.perf_counter()
        try:
            result = reg.check()
            status, description, error = result.status, result.description, None
        except Exception as e:
            # Reported with the registration's failure status.
            log.exception("health_check_failed", name=reg.name, error_type=type(e).__name__)
            status, description, error = reg.failure_status, str(e) or type(e).__name__, type(e).__name__
        return HealthReportEntry(
            status=status,
            description=description,
            duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
            tags=reg.tags,
            error=error,
        )
