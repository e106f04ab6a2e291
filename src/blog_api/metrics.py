"""Shared OTel metrics instruments for the service."""

from opentelemetry import metrics

METER_NAME = "blog_api"

meter = metrics.get_meter(METER_NAME)

api_requests_total = meter.create_counter(
    name="api_requests_total",
    description="Total API requests dispatched, by route and status",
    unit="1",
)

api_errors_total = meter.create_counter(
    name="api_errors_total",
    description="API requests that ended in an error, by route and error kind",
    unit="1",
)

api_request_duration = meter.create_histogram(
    name="api_request_duration_seconds",
    description="Duration of dispatched API requests",
    unit="s",
)
