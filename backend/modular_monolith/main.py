from __future__ import annotations

import uvicorn

from .hosting.builder import WebApplication, create_builder
from .hosting.service_defaults import add_service_defaults, map_default_endpoints
from .modules.book_catalog import add_book_service, map_book_endpoints
from .observability.logging import configure_logging, get_logger
from .settings import Settings, get_settings


def create_app(settings: Settings | None = None) -> WebApplication:
    settings = settings or get_settings()

    # Logging must be configured before anything else logs.
    configure_logging(level=settings.log_level)
    log = get_logger("startup")

    # Configuration phase: shared defaults first, then each module.
    builder = create_builder(settings)
    add_service_defaults(builder)
    add_book_service(builder.services)

    # Running phase
    app = builder.build()
    map_default_endpoints(app)
    map_book_endpoints(app)

    log.info("app_starting", environment=app.environment.name)
    return app


def main() -> None:
    settings = get_settings()
    app = create_app(settings)
    app.telemetry.install_globals()
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
