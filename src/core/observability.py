from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from .config import settings
from .utils import get_logger

logger = get_logger(__name__)

SERVICE_VERSION_VALUE = "1.0.0"


def setup_observability(app=None):
    """
    Sets up OpenTelemetry tracing.
    Without OTEL_EXPORTER_OTLP_ENDPOINT this is a no-op.
    """
    if not settings.otel.exporter_otlp_endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set. Skipping OpenTelemetry setup.")
        return

    logger.info("Setting up OpenTelemetry", service_name=settings.otel.service_name)

    resource = Resource.create({
        SERVICE_NAME: settings.otel.service_name,
        SERVICE_VERSION: SERVICE_VERSION_VALUE,
    })

    provider = TracerProvider(resource=resource)

    # The grpc exporter expects host:port
    endpoint = settings.otel.exporter_otlp_endpoint.replace("http://", "").replace("https://", "")

    otlp_exporter = OTLPSpanExporter(endpoint=endpoint, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(provider)

    if app:
        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)

    logger.info("OpenTelemetry setup complete.")
