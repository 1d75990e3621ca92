"""
Declarative telemetry configuration.

Composition steps only describe what should be collected and where it should
be shipped. `observability.otel` turns the description into SDK providers
when the application is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Instrumentation source names
HTTP_SERVER = "fastapi"
HTTP_CLIENT = "httpx"
RUNTIME = "runtime"

OTLP_HTTP_PROTOBUF = "http/protobuf"


@dataclass
class LoggingTelemetryOptions:
    enabled: bool = False
    include_formatted_message: bool = False
    include_scopes: bool = False


@dataclass(frozen=True)
class OtlpExporterDescriptor:
    endpoint: str
    headers: dict[str, str] = field(default_factory=dict)
    protocol: str = OTLP_HTTP_PROTOBUF


@dataclass
class TelemetryConfiguration:
    logging: LoggingTelemetryOptions = field(default_factory=LoggingTelemetryOptions)
    metric_sources: list[str] = field(default_factory=list)
    tracing_sources: list[str] = field(default_factory=list)
    exporters: list[OtlpExporterDescriptor] = field(default_factory=list)

    def add_metric_sources(self, *names: str) -> "TelemetryConfiguration":
        for n in names:
            if n not in self.metric_sources:
                self.metric_sources.append(n)
        return self

    def add_tracing_sources(self, *names: str) -> "TelemetryConfiguration":
        for n in names:
            if n not in self.tracing_sources:
                self.tracing_sources.append(n)
        return self

    def use_otlp_exporter(self, endpoint: str, headers: dict[str, str] | None = None) -> "TelemetryConfiguration":
        descriptor = OtlpExporterDescriptor(endpoint=endpoint, headers=dict(headers or {}))
        # One OTLP exporter covers all signals; configuring it twice is a no-op.
        if descriptor not in self.exporters:
            self.exporters.append(descriptor)
        return self
