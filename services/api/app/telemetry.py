from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

SERVICE_NAME = "ssi-agent-controller"


def setup_otel(settings):
    if not settings.otlp_endpoint:
        return
    resource = Resource.create({"service.name": SERVICE_NAME, "agent.id": settings.agent_id})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)


@contextmanager
def span(operation, **attributes):
    tracer = trace.get_tracer(SERVICE_NAME)
    with tracer.start_as_current_span(operation) as current:
        for key, value in attributes.items():
            if value is not None:
                current.set_attribute(f"ssi.{key}", str(value))
        try:
            yield current
        except Exception as exc:
            current.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
