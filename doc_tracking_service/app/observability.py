import logging
from typing import Optional

from opentelemetry import metrics, trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME as ResourceAttributesServiceName
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from pythonjsonlogger import jsonlogger

from doc_tracking_service.app.config import settings

logger = logging.getLogger("doc_tracking_service")


class TraceContextLogFilter(logging.Filter):
    """Stamps each record with the active span's ids so log lines join their trace."""

    def filter(self, record: logging.LogRecord) -> bool:
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            record.otelTraceID = format(span_context.trace_id, "032x")
            record.otelSpanID = format(span_context.span_id, "016x")
        else:
            record.otelTraceID = "0"
            record.otelSpanID = "0"
        return True


def setup_json_logging():
    root_logger = logging.getLogger()
    if any(isinstance(h.formatter, jsonlogger.JsonFormatter) for h in root_logger.handlers):
        return
    log_handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(module)s %(funcName)s %(lineno)d %(otelTraceID)s %(otelSpanID)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger_name", "asctime": "timestamp"},
    )
    log_handler.setFormatter(formatter)
    log_handler.addFilter(TraceContextLogFilter())
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(log_handler)
    log_level = settings.LOG_LEVEL.upper()
    root_logger.setLevel(log_level)
    logger.setLevel(log_level)
    logger.info(f"JSON logging configured at level {log_level}.")


def setup_opentelemetry(service_name: str):
    resource = Resource(attributes={
        ResourceAttributesServiceName: service_name,
    })
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    if settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT:
        logger.info(f"Configuring OTLP Span Exporter. Endpoint: {settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT}")
        otlp_span_exporter = OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT, insecure=True)
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
    else:
        logger.info("OTLP Span Exporter not configured. Using Console for spans.")
    trace.set_tracer_provider(tracer_provider)

    metric_readers = [PeriodicExportingMetricReader(ConsoleMetricExporter(), export_interval_millis=5000)]
    if settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT:
        logger.info(f"Configuring OTLP Metric Exporter. Endpoint: {settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT}")
        otlp_metric_exporter = OTLPMetricExporter(endpoint=settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT, insecure=True)
        metric_readers.append(PeriodicExportingMetricReader(otlp_metric_exporter, export_interval_millis=5000))
    else:
        logger.info("OTLP Metric Exporter not configured. Using Console for metrics.")
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=metric_readers))
    logger.info(f"OpenTelemetry providers configured for service: {service_name}.")


# Call at module load time
setup_json_logging()

# Global proxies; they bind to the real providers once an entry point calls setup_opentelemetry
tracer = trace.get_tracer("doc_tracking_service.tracer")
meter = metrics.get_meter("doc_tracking_service.meter")

tracking_events_processed_counter = meter.create_counter(
    name="doc_tracking.events.processed.total",
    description="Counts document-received events handled, partitioned by outcome.",
    unit="1",
)

side_effect_failures_counter = meter.create_counter(
    name="doc_tracking.side_effects.failed.total",
    description="Counts non-fatal side-effect failures (stage advance, readiness task, audit note).",
    unit="1",
)

tracking_update_latency_histogram = meter.create_histogram(
    name="doc_tracking.update.latency.seconds",
    description="Measures the latency of a document-received event from consumption to result.",
    unit="s",
)


def extract_trace_context_from_kafka_headers(headers: Optional[list]) -> Optional[Context]:
    """
    Extracts OpenTelemetry trace context from Kafka message headers.
    Args:
        headers: A list of tuples (key, value_bytes) from Kafka message.
    Returns:
        An OpenTelemetry Context object, or None when the message has no headers.
    """
    if not headers:
        return None
    header_dict = {key: value.decode("utf-8") for key, value in headers if value is not None}
    return TraceContextTextMapPropagator().extract(carrier=header_dict)
