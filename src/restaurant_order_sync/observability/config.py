"""OpenTelemetry and logging setup for one client surface process."""

import logging
import os
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)

DEFAULT_OTLP_ENDPOINT = "http://localhost:4318"
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(surface)s %(message)s"


def client_surface() -> str:
    """Name of the surface this process serves (pos, kitchen, floor)."""
    return os.getenv("CLIENT_SURFACE", "pos")


def _otlp_endpoint() -> str:
    return os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT).rstrip("/")


def get_service_resource() -> Resource:
    """Create the OpenTelemetry resource for this process.

    Returns:
        Resource with service name, client surface and environment attributes
    """
    return Resource.create(
        {
            "service.name": os.getenv("OTEL_SERVICE_NAME", "order-sync"),
            "service.instance.id": os.getenv("HOSTNAME", "local"),
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
            "client.surface": client_surface(),
        }
    )


def setup_tracing(resource: Resource) -> TracerProvider:
    """Install a tracer provider exporting spans over OTLP/HTTP.

    Args:
        resource: Resource attached to every span

    Returns:
        The installed TracerProvider
    """
    endpoint = _otlp_endpoint()
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")))
    trace.set_tracer_provider(provider)

    logger.info(f"Tracing exports to {endpoint}")
    return provider


def setup_metrics(resource: Resource) -> MeterProvider:
    """Install a meter provider exporting refresh, push and alert metrics.

    The export interval is read from OTEL_METRIC_EXPORT_INTERVAL_MS (default 60s).

    Args:
        resource: Resource attached to every metric

    Returns:
        The installed MeterProvider
    """
    endpoint = _otlp_endpoint()
    interval_ms = int(os.getenv("OTEL_METRIC_EXPORT_INTERVAL_MS", "60000"))
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"),
        export_interval_millis=interval_ms,
    )
    provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(provider)

    logger.info(f"Metrics export to {endpoint} every {interval_ms}ms")
    return provider


def setup_observability(app: Any = None, enable_exporters: bool = True) -> None:
    """Initialize tracing, metrics and auto-instrumentation.

    Exporters are always off when ENVIRONMENT=test; spans and metrics are then
    recorded by in-process SDK providers only.

    Args:
        app: Optional FastAPI application to instrument
        enable_exporters: Whether to export over OTLP
    """
    if os.getenv("ENVIRONMENT", "development") == "test":
        enable_exporters = False

    resource = get_service_resource()

    if enable_exporters:
        setup_tracing(resource)
        setup_metrics(resource)
    else:
        trace.set_tracer_provider(TracerProvider(resource=resource))
        metrics.set_meter_provider(MeterProvider(resource=resource))

    # Order service calls go through httpx
    httpx_instrumentor = HTTPXClientInstrumentor()
    if not httpx_instrumentor.is_instrumented_by_opentelemetry:
        httpx_instrumentor.instrument()

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI application instrumented")

    logger.info(f"Observability configured for surface {client_surface()}")


def shutdown_observability() -> None:
    """Flush and shut down the SDK providers installed by setup_observability."""
    tracer_provider = trace.get_tracer_provider()
    if isinstance(tracer_provider, TracerProvider):
        tracer_provider.shutdown()

    meter_provider = metrics.get_meter_provider()
    if isinstance(meter_provider, MeterProvider):
        meter_provider.shutdown()


class SurfaceFilter(logging.Filter):
    """Stamps each log record with the client surface it came from."""

    def __init__(self, surface: str) -> None:
        super().__init__()
        self.surface = surface

    def filter(self, record: logging.LogRecord) -> bool:
        record.surface = self.surface
        return True


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger.

    Every record carries a ``surface`` field so that logs from POS, kitchen and
    floor processes can be told apart once aggregated.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL); the
            LOG_LEVEL environment variable takes precedence
    """
    level_str = os.getenv("LOG_LEVEL", log_level).upper()
    level = getattr(logging, level_str, logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT, timestamp=True))
    console_handler.addFilter(SurfaceFilter(client_surface()))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(console_handler)

    logger.info(f"Structured JSON logging configured at {level_str} level")
