from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, ConsoleSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

_provider_installed = False


def init_otel(app=None, engine=None, redis: bool = False, service_name: str = "clypse"):
    """Initialize OpenTelemetry tracing with console exporter.

    Pass the FastAPI app and SQLAlchemy engine to instrument them; `redis=True`
    instruments every redis client. The tracer provider is installed once per process.
    """
    global _provider_installed
    if not _provider_installed:
        resource = Resource.create({"service.name": service_name})
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        trace.set_tracer_provider(provider)
        _provider_installed = True

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)

    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

    if redis:
        RedisInstrumentor().instrument()

    return trace.get_tracer(service_name)
