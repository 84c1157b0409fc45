import logging
from typing import Any, Dict, Optional, ContextManager
from contextlib import contextmanager

from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    BatchSpanProcessor,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

logger = logging.getLogger("stream_relay.observability")

# ------------------------------------------------------------------------------
# OpenTelemetry (SAFE, SINGLE INIT)
# ------------------------------------------------------------------------------

_OTEL_CONFIGURED = False


def configure_opentelemetry(
    service_name: str = "stream-relay",
    otlp_trace_endpoint: Optional[str] = None,
):
    """
    Configure OpenTelemetry exactly once.
    Safe for FastAPI + scripts.
    """

    global _OTEL_CONFIGURED
    if _OTEL_CONFIGURED:
        logger.debug("OpenTelemetry already configured, skipping re-init")
        return

    logger.info("Configuring OpenTelemetry")

    resource = Resource.create(
        {
            "service.name": service_name,
        }
    )

    # ------------------------
    # Traces
    # ------------------------

    tracer_provider = TracerProvider(resource=resource)

    if otlp_trace_endpoint:
        endpoint = otlp_trace_endpoint
        if "://" not in endpoint:
            endpoint = f"http://{endpoint}"
        if not endpoint.endswith("/v1/traces"):
            endpoint = endpoint.rstrip("/") + "/v1/traces"

        logger.info(f"Using OTLP HTTP trace exporter -> {endpoint}")

        span_processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint))
    else:
        logger.warning("No OTLP trace endpoint set, using ConsoleSpanExporter")
        span_processor = SimpleSpanProcessor(ConsoleSpanExporter())

    tracer_provider.add_span_processor(span_processor)
    trace.set_tracer_provider(tracer_provider)

    # ------------------------
    # Metrics
    # ------------------------

    # No reader: counters stay in-process until an exporter is wired in.
    metrics.set_meter_provider(MeterProvider(resource=resource))

    _OTEL_CONFIGURED = True


def shutdown_opentelemetry():
    """
    Flush spans on FastAPI shutdown.
    """
    try:
        provider = trace.get_tracer_provider()
        if hasattr(provider, "shutdown"):
            logger.info("Shutting down OpenTelemetry provider (flush)")
            provider.shutdown()
    except Exception as e:
        logger.exception(f"Failed to shutdown OpenTelemetry cleanly: {e}")


# ------------------------------------------------------------------------------
# Tracer Wrapper
# ------------------------------------------------------------------------------

class Tracer:
    def __init__(self, name: str = "stream_relay"):
        self._tracer = trace.get_tracer(name)

    @contextmanager
    def start_span(
        self,
        name: str,
        attributes: Dict[str, Any] | None = None,
    ) -> ContextManager[trace.Span]:
        with self._tracer.start_as_current_span(
            name,
            attributes=attributes or {},
        ) as span:
            yield span


# ------------------------------------------------------------------------------
# Metrics Wrapper
# ------------------------------------------------------------------------------

class Metrics:
    def __init__(self, name: str = "stream_relay"):
        self._meter = metrics.get_meter(name)
        self._counters = {}

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        tags: Dict[str, str] | None = None,
    ):
        if name not in self._counters:
            self._counters[name] = self._meter.create_counter(name)
        self._counters[name].add(value, attributes=tags)


# ------------------------------------------------------------------------------
# Global instances
# ------------------------------------------------------------------------------

global_tracer = Tracer()
global_metrics = Metrics()
