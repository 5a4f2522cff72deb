"""OpenTelemetry helpers for the planner service."""
from __future__ import annotations

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..config import get_settings

_configured = False


def configure_telemetry() -> None:
    """Configure tracing and metrics exporters once per process."""
    global _configured
    if _configured:
        return
    settings = get_settings()
    resource = Resource(
        attributes={SERVICE_NAME: settings.observability.otel_service_name, "deployment.environment": settings.environment}
    )

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    endpoint = settings.observability.otel_exporter_otlp_endpoint
    if endpoint:
        tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=endpoint))
        metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
    _configured = True


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


__all__ = ["configure_telemetry", "get_tracer"]
