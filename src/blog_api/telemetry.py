"""Structured logging and OpenTelemetry export setup."""

from __future__ import annotations

import logging
import os
from typing import Any

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

_SERVICE_NAME = "blog-api"
_otel_logging_configured = False
_initialized = False

# LogRecord attributes (plus structlog's own keys) that extra= must not overwrite
_RESERVED_LOG_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "event",
    "level",
    "timestamp",
    "message",
    "exc_info",
}

# OTLP exporters log every transient gRPC retry at WARNING
_NOISY_LOGGERS = (
    "opentelemetry.exporter.otlp.proto.grpc",
    "opentelemetry.sdk.trace.export",
    "opentelemetry.sdk.metrics.export",
    "opentelemetry.sdk._logs.export",
)


def add_trace_context(logger: Any, method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Structlog processor that injects trace_id and span_id from the active span."""
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if ctx and ctx.trace_id:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def emit_to_otel_logs(logger: Any, method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Structlog processor that re-emits to stdlib logging for OTel log export.

    Only active once :func:`init_telemetry` has configured an OTLP endpoint.
    """
    if not _otel_logging_configured:
        return event_dict

    level_name = event_dict.get("level", "info").upper()
    level = getattr(logging, level_name, logging.INFO)
    msg = event_dict.get("event", "")
    extra = {k: v for k, v in event_dict.items() if k not in _RESERVED_LOG_KEYS}
    logging.getLogger(_SERVICE_NAME).log(level, msg, extra=extra)
    return event_dict


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(log_level: str = "info") -> None:
    """Configure structlog and render stdlib records with the same console renderer.

    Request context bound via ``structlog.contextvars`` is merged into every event.
    Unknown level names fall back to INFO.
    """
    level = _resolve_level(log_level)
    shared: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            *shared,
            add_trace_context,
            emit_to_otel_logs,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(), foreign_pre_chain=shared
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def init_telemetry() -> None:
    """Configure OpenTelemetry tracing, metrics, and log export.

    No-op if OTEL_EXPORTER_OTLP_ENDPOINT is unset or already initialized.
    """
    global _otel_logging_configured, _initialized  # noqa: PLW0603
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint or _initialized:
        return

    from opentelemetry._logs import set_logger_provider
    from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
    from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
    from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create(
        {
            "service.name": _SERVICE_NAME,
            "service.version": os.environ.get("SERVICE_VERSION", "0.1.0"),
            "deployment.environment": os.environ.get("DEPLOYMENT_ENV", ""),
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(tracer_provider)

    metric_reader = PeriodicExportingMetricReader(OTLPMetricExporter())
    meter_provider = MeterProvider(metric_readers=[metric_reader], resource=resource)
    metrics.set_meter_provider(meter_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter()))
    set_logger_provider(logger_provider)

    otel_logger = logging.getLogger(_SERVICE_NAME)
    otel_logger.addHandler(LoggingHandler(logger_provider=logger_provider))
    otel_logger.setLevel(logging.DEBUG)
    otel_logger.propagate = False  # console output already comes from structlog
    _otel_logging_configured = True
    _initialized = True
    structlog.get_logger().info("otel_configured", endpoint=endpoint)


def shutdown_telemetry() -> None:
    """Flush and shutdown providers."""
    global _initialized, _otel_logging_configured  # noqa: PLW0603
    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()

    meter_provider = metrics.get_meter_provider()
    if isinstance(meter_provider, MeterProvider):
        meter_provider.shutdown()

    if _otel_logging_configured:
        from opentelemetry._logs import get_logger_provider
        from opentelemetry.sdk._logs import LoggerProvider

        log_provider = get_logger_provider()
        if isinstance(log_provider, LoggerProvider):
            log_provider.shutdown()  # type: ignore[no-untyped-call]

    _initialized = False
    _otel_logging_configured = False
