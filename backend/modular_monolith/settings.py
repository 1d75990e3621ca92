from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=None,
        extra="ignore",
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Runtime
    # Unset means production.
    environment: str = Field(default="production", validation_alias="APP_ENVIRONMENT")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8080, ge=1, le=65535, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Observability (OpenTelemetry)
    otel_service_name: str = Field(
        default="modular-monolith", validation_alias="OTEL_SERVICE_NAME"
    )
    # Base OTLP/HTTP endpoint (e.g. http://collector:4318). Blank disables export.
    otel_exporter_otlp_endpoint: str | None = Field(
        default=None, validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    # Comma-separated "key=value" pairs, same format as the OTel SDK env var.
    otel_exporter_otlp_headers: str | None = Field(
        default=None, validation_alias="OTEL_EXPORTER_OTLP_HEADERS"
    )

    # Service discovery: SERVICES__<NAME>__<ENDPOINT>=url[,url...]
    services: dict[str, dict[str, str]] = Field(
        default_factory=dict, validation_alias="SERVICES"
    )

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("stage", "staging"):
            return "staging"
        if v in ("dev", "development"):
            return "development"
        return v or "production"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    @property
    def is_development(self) -> bool:
        return self.normalized_environment == "development"

    @property
    def otlp_endpoint(self) -> str | None:
        v = str(self.otel_exporter_otlp_endpoint or "").strip()
        return v or None

    def otlp_headers(self) -> dict[str, str]:
        out: dict[str, str] = {}
        for pair in str(self.otel_exporter_otlp_headers or "").split(","):
            key, sep, value = pair.partition("=")
            if not sep or not key.strip():
                continue
            out[key.strip()] = value.strip()
        return out

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A redacted representation safe for structured logs / diagnostics.
        """
        return {
            "environment": self.normalized_environment,
            "port": self.port,
            "otel": {
                "service_name": self.otel_service_name,
                "exporter_endpoint": self.otlp_endpoint,
                "exporter_headers_configured": bool(self.otlp_headers()),
            },
            "services": sorted(self.services.keys()),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
