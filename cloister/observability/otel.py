"""OpenTelemetry + Prometheus fallback wiring for the Cloister server."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from cloister import config

logger = logging.getLogger("cloister.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_discovery_counter: Any | None = None
_discovery_latency_hist: Any | None = None
_parser_failure_counter: Any | None = None
_watcher_event_counter: Any | None = None

_prom_enabled = False
_prom_discovery_counter: Any | None = None
_prom_discovery_latency_hist: Any | None = None
_prom_parser_failure_counter: Any | None = None
_prom_watcher_event_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _label(value: str) -> str:
    return (value or "").strip() or "unknown"


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _discovery_counter, _discovery_latency_hist, _parser_failure_counter, _watcher_event_counter
    global _prom_enabled, _prom_discovery_counter, _prom_discovery_latency_hist
    global _prom_parser_failure_counter, _prom_watcher_event_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (CLOISTER_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "cloister"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "cloister",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("cloister")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("cloister")

    _discovery_counter = meter.create_counter(
        "cloister_discovery_runs_total",
        unit="1",
        description="Count of session catalog discovery runs",
    )
    _discovery_latency_hist = meter.create_histogram(
        "cloister_discovery_latency_ms",
        unit="ms",
        description="Latency of session catalog discovery runs",
    )
    _parser_failure_counter = meter.create_counter(
        "cloister_parser_failures_total",
        unit="1",
        description="Transcript files skipped because they could not be read or parsed",
    )
    _watcher_event_counter = meter.create_counter(
        "cloister_watcher_events_total",
        unit="1",
        description="Live update events published to subscribers",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_discovery_counter = Counter(
                "cloister_discovery_runs_total",
                "Count of session catalog discovery runs",
                ["result"],
            )
            _prom_discovery_latency_hist = Histogram(
                "cloister_discovery_latency_ms",
                "Latency of session catalog discovery runs",
                ["result"],
            )
            _prom_parser_failure_counter = Counter(
                "cloister_parser_failures_total",
                "Transcript files skipped because they could not be read or parsed",
                ["parser"],
            )
            _prom_watcher_event_counter = Counter(
                "cloister_watcher_events_total",
                "Live update events published to subscribers",
                ["type"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception as exc:  # noqa: BLE001
        logger.debug("FastAPI uninstrument failed: %s", exc)
    for provider in (_meter_provider, _trace_provider):
        try:
            if provider is not None:
                provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Telemetry provider shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_discovery(result: str, duration_ms: float) -> None:
    labels = {"result": _label(result)}
    if _enabled and _discovery_counter is not None:
        _discovery_counter.add(1, labels)
    if _enabled and _discovery_latency_hist is not None:
        _discovery_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _prom_enabled and _prom_discovery_counter is not None:
        _prom_discovery_counter.labels(**labels).inc()
    if _prom_enabled and _prom_discovery_latency_hist is not None:
        _prom_discovery_latency_hist.labels(**labels).observe(max(0.0, float(duration_ms)))


def record_parser_failure(parser: str) -> None:
    labels = {"parser": _label(parser)}
    if _enabled and _parser_failure_counter is not None:
        _parser_failure_counter.add(1, labels)
    if _prom_enabled and _prom_parser_failure_counter is not None:
        _prom_parser_failure_counter.labels(**labels).inc()


def record_watcher_event(event_type: str, count: int = 1) -> None:
    safe_count = max(0, int(count))
    if safe_count == 0:
        return
    labels = {"type": _label(event_type)}
    if _enabled and _watcher_event_counter is not None:
        _watcher_event_counter.add(safe_count, labels)
    if _prom_enabled and _prom_watcher_event_counter is not None:
        _prom_watcher_event_counter.labels(**labels).inc(safe_count)
