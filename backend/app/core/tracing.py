"""OpenTelemetry tracing for requests and merge pipeline stages.

Spans are exported to the console only in debug mode; otherwise the SDK
provider exists so trace and span IDs reach the structured logs.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from opentelemetry import trace
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

_provider: Optional[TracerProvider] = None
_tracer: Optional[trace.Tracer] = None


def setup_tracing(
    service_name: str,
    service_version: str,
    environment: str = "development",
    enable_console_export: bool = False,
) -> trace.Tracer:
    """Install the global tracer provider for the service."""
    global _provider, _tracer

    _provider = TracerProvider(
        resource=Resource.create({
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
            "deployment.environment": environment,
        })
    )
    if enable_console_export:
        _provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_provider)
    set_global_textmap(TraceContextTextMapPropagator())
    _tracer = trace.get_tracer(service_name, service_version)
    logger.info("Tracing initialized for %s v%s (%s)", service_name, service_version, environment)
    return _tracer


def shutdown_tracing() -> None:
    """Flush pending spans on application shutdown."""
    if _provider is not None:
        _provider.shutdown()


def _current_context() -> Optional[trace.SpanContext]:
    context = trace.get_current_span().get_span_context()
    return context if context.is_valid else None


def get_trace_id() -> Optional[str]:
    context = _current_context()
    return format(context.trace_id, "032x") if context else None


def get_span_id() -> Optional[str]:
    context = _current_context()
    return format(context.span_id, "016x") if context else None


@contextmanager
def create_span(name: str, attributes: Optional[dict] = None) -> Iterator[Span]:
    """Run a block inside a child span named after a pipeline stage.

    An exception leaving the block marks the span as failed and propagates.
    """
    tracer = _tracer or trace.get_tracer(__name__)
    with tracer.start_as_current_span(
        name,
        attributes=attributes or {},
        record_exception=True,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, f"{type(e).__name__}: {e}"))
            raise
