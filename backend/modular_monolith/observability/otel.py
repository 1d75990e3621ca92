from __future__ import annotations

import gc
import logging
import threading
import time
from typing import Iterable

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.metrics import CallbackOptions, Observation
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..hosting.telemetry import HTTP_CLIENT, HTTP_SERVER, RUNTIME, TelemetryConfiguration
from .logging import TelemetryLogFilter, get_logger


def _signal_endpoint(base: str, signal: str) -> str:
    return f"{base.rstrip('/')}/v1/{signal}"


def _runtime_observations(options: CallbackOptions) -> Iterable[Observation]:
    for generation, stats in enumerate(gc.get_stats()):
        yield Observation(int(stats.get("collections", 0)), {"generation": generation})


def _thread_observations(options: CallbackOptions) -> Iterable[Observation]:
    yield Observation(threading.active_count())


def _cpu_observations(options: CallbackOptions) -> Iterable[Observation]:
    yield Observation(time.process_time())


class TelemetryRuntime:
    """
    SDK providers materialized from a `TelemetryConfiguration`.

    Building a runtime has no process-wide effect; `install_globals()` does.
    """

    def __init__(
        self,
        configuration: TelemetryConfiguration,
        *,
        service_name: str,
        environment: str,
        metric_readers: list[MetricReader] | None = None,
    ):
        self.configuration = configuration
        self._log = get_logger("otel")
        self._installed = False
        self._log_handler: LoggingHandler | None = None

        resource = Resource.create(
            {
                "service.name": service_name,
                "deployment.environment": environment,
            }
        )

        readers: list[MetricReader] = list(metric_readers or [])
        self.tracer_provider = TracerProvider(resource=resource)
        self.logger_provider = LoggerProvider(resource=resource)

        for exporter in configuration.exporters:
            headers = dict(exporter.headers) or None
            self.tracer_provider.add_span_processor(
                BatchSpanProcessor(
                    OTLPSpanExporter(endpoint=_signal_endpoint(exporter.endpoint, "traces"), headers=headers)
                )
            )
            readers.append(
                PeriodicExportingMetricReader(
                    OTLPMetricExporter(endpoint=_signal_endpoint(exporter.endpoint, "metrics"), headers=headers)
                )
            )
            self.logger_provider.add_log_record_processor(
                BatchLogRecordProcessor(
                    OTLPLogExporter(endpoint=_signal_endpoint(exporter.endpoint, "logs"), headers=headers)
                )
            )
            self._log.info("otel_exporter_configured", exporter="otlp_http", endpoint=exporter.endpoint)

        self.meter_provider = MeterProvider(resource=resource, metric_readers=readers)

        if RUNTIME in configuration.metric_sources:
            meter = self.meter_provider.get_meter("modular_monolith.runtime")
            meter.create_observable_counter(
                "process.runtime.cpython.gc_count",
                callbacks=[_runtime_observations],
                description="Number of garbage collections per generation",
            )
            meter.create_observable_gauge(
                "process.runtime.cpython.thread_count",
                callbacks=[_thread_observations],
                description="Number of active threads",
            )
            meter.create_observable_counter(
                "process.runtime.cpython.cpu_time",
                callbacks=[_cpu_observations],
                unit="s",
                description="Process CPU time",
            )

    @property
    def exporting(self) -> bool:
        return bool(self.configuration.exporters)

    def instrument_server(self, app: FastAPI) -> None:
        traced = HTTP_SERVER in self.configuration.tracing_sources
        measured = HTTP_SERVER in self.configuration.metric_sources
        if not (traced or measured):
            return
        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=self.tracer_provider if traced else trace.NoOpTracerProvider(),
            meter_provider=self.meter_provider if measured else metrics.NoOpMeterProvider(),
        )
        self._log.info("otel_instrumented", target="fastapi")

    def install_globals(self) -> None:
        """
        Process-wide wiring; call once from the entrypoint:
        global providers, httpx client instrumentation and the OTel log handler.
        """
        if self._installed:
            return

        trace.set_tracer_provider(self.tracer_provider)
        metrics.set_meter_provider(self.meter_provider)
        set_logger_provider(self.logger_provider)

        traced = HTTP_CLIENT in self.configuration.tracing_sources
        measured = HTTP_CLIENT in self.configuration.metric_sources
        if traced or measured:
            HTTPXClientInstrumentor().instrument(
                tracer_provider=self.tracer_provider if traced else trace.NoOpTracerProvider(),
                meter_provider=self.meter_provider if measured else metrics.NoOpMeterProvider(),
            )
            self._log.info("otel_instrumented", target="httpx")

        options = self.configuration.logging
        if options.enabled:
            handler = LoggingHandler(level=logging.NOTSET, logger_provider=self.logger_provider)
            handler.addFilter(
                TelemetryLogFilter(
                    include_formatted_message=options.include_formatted_message,
                    include_scopes=options.include_scopes,
                )
            )
            logging.getLogger().addHandler(handler)
            self._log_handler = handler

        self._installed = True

    def shutdown(self) -> None:
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
            self._log_handler = None
        self.tracer_provider.shutdown()
        self.meter_provider.shutdown()
        self.logger_provider.shutdown()
