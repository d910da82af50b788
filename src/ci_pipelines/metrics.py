"""
Prometheus metrics for the pipeline creation service.

This module defines the metrics collected while creating pipelines: request
outcomes, time spent in each workflow stage, and calls to the SCM provider.
"""

from prometheus_client import Counter, Histogram, Gauge, Info
import time


# Pipeline creation metrics
pipeline_create_requests_total = Counter(
    "ci_pipelines_create_requests_total",
    "Total number of pipeline creation requests",
    ["outcome"],  # outcome = created|ConflictError|UnauthorizedError|etc
)

pipeline_create_duration_seconds = Histogram(
    "ci_pipelines_create_duration_seconds",
    "Time spent handling pipeline creation requests",
)

pipeline_stage_duration_seconds = Histogram(
    "ci_pipelines_stage_duration_seconds",
    "Time spent in each stage of the pipeline creation workflow",
    ["stage"],
)

pipeline_stage_errors_total = Counter(
    "ci_pipelines_stage_errors_total",
    "Total number of failures per pipeline creation stage",
    ["stage", "error_type"],
)

# SCM API interaction metrics
scm_api_call_duration_seconds = Histogram(
    "ci_pipelines_scm_api_call_duration_seconds",
    "Duration of SCM API calls",
    ["provider", "endpoint"],
)

scm_api_call_errors_total = Counter(
    "ci_pipelines_scm_api_call_errors_total",
    "Total number of failed SCM API calls",
    ["provider", "endpoint", "error_type"],
)

# Health check metrics
health_check_status = Gauge(
    "ci_pipelines_health_check_status",
    "Health check status (1 = healthy, 0 = unhealthy)",
    ["service"],  # service = scm|overall
)

# Application info
app_info = Info("ci_pipelines_app", "CI Pipelines application information")


class MetricsContext:
    """Context manager for timing operations and handling errors with metrics."""

    def __init__(self, histogram, error_counter, error_labels=None):
        self.histogram = histogram
        self.error_counter = error_counter
        self.error_labels = error_labels or []
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            duration = time.time() - self.start_time
            self.histogram.observe(duration)

        if exc_type is not None:
            error_type = exc_type.__name__
            self.error_counter.labels(*self.error_labels, error_type).inc()

        return False  # Don't suppress exceptions


def track_stage(stage: str):
    """Context manager for tracking a single workflow stage."""
    return MetricsContext(
        pipeline_stage_duration_seconds.labels(stage),
        pipeline_stage_errors_total,
        error_labels=[stage],
    )


def track_scm_api_call(provider: str, endpoint: str):
    """Context manager for tracking SCM API call metrics."""
    return MetricsContext(
        scm_api_call_duration_seconds.labels(provider, endpoint),
        scm_api_call_errors_total,
        error_labels=[provider, endpoint],
    )
