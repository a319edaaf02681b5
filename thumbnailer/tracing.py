from __future__ import annotations

import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from .config import parse_bool


def _span_exporter():
    endpoint = (os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip()
    if endpoint:
        return OTLPSpanExporter(endpoint=endpoint, insecure=True)
    # No collector configured: spans go to stdout.
    return ConsoleSpanExporter()


def configure_tracing(app) -> bool:
    """Enables OpenTelemetry for inbound Flask requests and the source download."""
    if not parse_bool(os.environ.get("FOLIO_OTEL_ENABLED", "false")):
        return False

    resource = Resource.create(
        {
            "service.name": os.environ.get("FOLIO_OTEL_SERVICE_NAME", "folio-thumbnailer"),
            "service.version": os.environ.get("FOLIO_VERSION", "0.1.0-dev"),
            "deployment.environment": os.environ.get("FOLIO_ENV", "production"),
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(_span_exporter()))
    trace.set_tracer_provider(provider)

    FlaskInstrumentor().instrument_app(app)
    RequestsInstrumentor().instrument()
    return True
