"""OpenTelemetry configuration for StoryVault."""

import os
import sys

from opentelemetry import metrics, trace
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import start_http_server

from .infrastructure.database.database import get_main_engine
from .logging_config import get_logger

logger = get_logger(__name__)

_METRICS_PORTS = (8080, 8081)


def setup_telemetry(app):
    """Configure OpenTelemetry tracing and metrics for the FastAPI application.

    Disabled unless ENABLE_TELEMETRY is set, and always skipped under pytest.
    """
    try:
        if not os.getenv("ENABLE_TELEMETRY"):
            return

        # Skip telemetry setup during tests to avoid I/O issues
        if "pytest" in sys.modules or os.getenv("TESTING"):
            logger.info("Skipping OpenTelemetry setup during tests")
            return

        # Set up metrics provider with Prometheus exporter
        prometheus_reader = PrometheusMetricReader()
        metrics.set_meter_provider(MeterProvider(metric_readers=[prometheus_reader]))
        _start_metrics_server()

        trace.set_tracer_provider(TracerProvider())
        tracer_provider = trace.get_tracer_provider()

        # Console exporter until an OTLP collector is deployed
        span_processor = BatchSpanProcessor(ConsoleSpanExporter())
        tracer_provider.add_span_processor(span_processor)  # type: ignore[attr-defined]

        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumentation enabled")

        SQLAlchemyInstrumentor().instrument(engine=get_main_engine())
        logger.info("SQLAlchemy instrumentation enabled")

        logger.info("OpenTelemetry tracing and metrics setup completed")

    except Exception as e:
        # Telemetry is optional; the application keeps running without it
        logger.error("Failed to setup OpenTelemetry", error=str(e))


def _start_metrics_server() -> None:
    """Expose Prometheus metrics on the first free port."""
    for port in _METRICS_PORTS[:-1]:
        try:
            start_http_server(port)
        except OSError:
            continue
        logger.info("Prometheus metrics server started", port=port)
        return

    start_http_server(_METRICS_PORTS[-1])
    logger.info("Prometheus metrics server started", port=_METRICS_PORTS[-1])
