from __future__ import annotations

from dataclasses import dataclass

from fastapi import APIRouter, FastAPI

from ..errors import RegistryFrozenError
from ..observability.logging import get_logger
from ..observability.otel import TelemetryRuntime
from ..settings import Settings
from ..web import create_api
from .provider import ServiceProvider, validate_registry
from .registry import ServiceRegistry
from .telemetry import TelemetryConfiguration

log = get_logger("startup")


@dataclass(frozen=True)
class HostEnvironment:
    """Environment the host runs in; the flags come from `Settings`."""

    name: str
    is_development: bool = False
    is_production: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "HostEnvironment":
        return cls(
            name=settings.normalized_environment,
            is_development=settings.is_development,
            is_production=settings.is_production,
        )


class ApplicationBuilder:
    """
    Configuration phase. Composition steps mutate `services` and `telemetry`;
    `build()` moves to the running phase and freezes the registry.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.environment = HostEnvironment.from_settings(settings)
        self.services = ServiceRegistry()
        self.telemetry = TelemetryConfiguration()
        self.services.add_instance(Settings, settings)
        self.services.add_instance(HostEnvironment, self.environment)

    def build(self) -> "WebApplication":
        if self.services.frozen:
            raise RegistryFrozenError("build() can only be called once per builder")
        validate_registry(self.services)
        self.services.freeze()

        provider = ServiceProvider(self.services)
        telemetry = TelemetryRuntime(
            self.telemetry,
            service_name=self.settings.otel_service_name,
            environment=self.environment.name,
        )

        api = create_api(
            provider=provider,
            environment=self.environment,
            on_shutdown=[telemetry.shutdown, provider.close],
        )
        telemetry.instrument_server(api)
        log.info(
            "app_built",
            environment=self.environment.name,
            services=len(self.services),
            settings=self.settings.to_log_safe_dict(),
        )
        return WebApplication(
            api=api,
            services=provider,
            environment=self.environment,
            settings=self.settings,
            telemetry=telemetry,
        )


class WebApplication:
    """Running phase: the registry is frozen; routes may still be mapped."""

    def __init__(
        self,
        *,
        api: FastAPI,
        services: ServiceProvider,
        environment: HostEnvironment,
        settings: Settings,
        telemetry: TelemetryRuntime,
    ):
        self.api = api
        self.services = services
        self.environment = environment
        self.settings = settings
        self.telemetry = telemetry

    def include_router(self, router: APIRouter, **kwargs) -> "WebApplication":
        self.api.include_router(router, **kwargs)
        return self

    async def __call__(self, scope, receive, send) -> None:
        await self.api(scope, receive, send)


def create_builder(settings: Settings | None = None) -> ApplicationBuilder:
    return ApplicationBuilder(settings if settings is not None else Settings())
