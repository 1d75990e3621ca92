"""
Cross-cutting defaults every service in the monolith gets: OpenTelemetry,
health checks, service discovery and resilient outbound HTTP clients.

Each step takes the builder, mutates it and returns it so steps chain. All of
them run during the configuration phase, before `builder.build()`.
"""

from __future__ import annotations

from ..errors import require_argument
from ..observability.logging import get_logger
from ..routers.health import create_health_router
from .builder import ApplicationBuilder, WebApplication
from .discovery import add_service_discovery
from .health import HealthCheckResult, HealthCheckService, add_health_checks, tagged
from .http_clients import HttpClientBuilder, configure_http_client_defaults
from .telemetry import HTTP_CLIENT, HTTP_SERVER, RUNTIME

log = get_logger("service_defaults")

LIVE_TAG = "live"


def add_service_defaults(builder: ApplicationBuilder) -> ApplicationBuilder:
    require_argument(builder, "builder")

    configure_open_telemetry(builder)
    add_default_health_checks(builder)

    # Discovery has to be registered before the client defaults that use it.
    add_service_discovery(builder.services)
    configure_http_client_defaults(builder.services, _configure_http_client)

    return builder


def _configure_http_client(http: HttpClientBuilder) -> None:
    # Turn on resilience by default
    http.add_standard_resilience_handler()
    # Turn on service discovery by default
    http.add_service_discovery()


def configure_open_telemetry(builder: ApplicationBuilder) -> ApplicationBuilder:
    require_argument(builder, "builder")

    telemetry = builder.telemetry
    telemetry.logging.enabled = True
    telemetry.logging.include_formatted_message = True
    telemetry.logging.include_scopes = True

    telemetry.add_metric_sources(HTTP_SERVER, HTTP_CLIENT, RUNTIME)
    telemetry.add_tracing_sources(HTTP_SERVER, HTTP_CLIENT)

    _add_open_telemetry_exporters(builder)
    return builder


def _add_open_telemetry_exporters(builder: ApplicationBuilder) -> ApplicationBuilder:
    endpoint = builder.settings.otlp_endpoint
    if endpoint:
        builder.telemetry.use_otlp_exporter(endpoint, builder.settings.otlp_headers())
    else:
        # Collected but not shipped anywhere.
        log.info("otel_exporter_disabled", reason="OTEL_EXPORTER_OTLP_ENDPOINT not set")
    return builder


def _self_check() -> HealthCheckResult:
    return HealthCheckResult.healthy()


def add_default_health_checks(builder: ApplicationBuilder) -> ApplicationBuilder:
    require_argument(builder, "builder")

    # Default liveness check: the process is up and serving.
    add_health_checks(builder.services).add_check("self", _self_check, [LIVE_TAG])
    return builder


def map_default_endpoints(app: WebApplication) -> WebApplication:
    require_argument(app, "app")

    # Health endpoints leak internals; they are only exposed in development.
    if app.environment.is_development:
        health = app.services.get_required_service(HealthCheckService)

        # All checks must pass for the app to be ready for traffic.
        app.include_router(create_health_router(health, path="/health"))

        # Only checks tagged "live" must pass for the app to be considered alive.
        app.include_router(create_health_router(health, path="/alive", predicate=tagged(LIVE_TAG)))

    return app
