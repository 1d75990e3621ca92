from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ..errors import require_argument
from ..hosting.health import HealthCheckService, HealthStatus, Predicate

# Degraded still serves traffic; only Unhealthy takes the instance out.
STATUS_CODES = {
    HealthStatus.HEALTHY: 200,
    HealthStatus.DEGRADED: 200,
    HealthStatus.UNHEALTHY: 503,
}


def create_health_router(
    health_service: HealthCheckService,
    *,
    path: str,
    predicate: Predicate | None = None,
) -> APIRouter:
    require_argument(health_service, "health_service")

    router = APIRouter()

    @router.get(path, tags=["health"], response_class=PlainTextResponse)
    def health_probe() -> PlainTextResponse:
        report = health_service.check_health(predicate)
        return PlainTextResponse(
            report.status.label,
            status_code=STATUS_CODES[report.status],
            headers={"Cache-Control": "no-store, no-cache"},
        )

    return router
