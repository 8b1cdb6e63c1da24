"""Prometheus metrics for conformance validation runs.

Key Responsibilities:
    - Define Prometheus metrics for per-resource validation, batch runs, file
      retries and report generation
    - Provide small recording helpers so call-sites never touch metric objects

Collaborators:
    - Upstream: Validator, batch orchestrator, resilience policy and report
      generator record through the helpers below
    - Downstream: Prometheus scrape or push gateway configured by the host

Thread Safety:
    - Thread-safe: All metric operations use atomic Prometheus operations
"""

# ==============================================================================
# IMPORTS
# ==============================================================================

from __future__ import annotations

from prometheus_client import Counter, Histogram

# ==============================================================================
# METRIC DEFINITIONS
# ==============================================================================

RESOURCES_VALIDATED = Counter(
    "conformance_resources_validated_total",
    "Resources validated, labelled by outcome",
    labelnames=("outcome",),
)

RESOURCE_VALIDATION_DURATION = Histogram(
    "conformance_resource_validation_duration_seconds",
    "Time spent validating a single resource",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

BATCH_DURATION = Histogram(
    "conformance_batch_duration_seconds",
    "Wall clock duration of a batch validation run",
    labelnames=("mode",),
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0),
)

BATCH_RUNS = Counter(
    "conformance_batch_runs_total",
    "Batch validation runs, labelled by mode and status",
    labelnames=("mode", "status"),
)

FILE_READ_RETRIES = Counter(
    "conformance_file_read_retries_total",
    "Retries performed for transient file I/O failures",
)

REPORT_GENERATION_FAILURES = Counter(
    "conformance_report_generation_failures_total",
    "Report artifacts that could not be written",
    labelnames=("format",),
)

# ==============================================================================
# RECORDING HELPERS
# ==============================================================================


def record_resource_validation(is_valid: bool, duration_seconds: float) -> None:
    """Record the outcome and duration of one resource validation."""
    RESOURCES_VALIDATED.labels(outcome="valid" if is_valid else "invalid").inc()
    RESOURCE_VALIDATION_DURATION.observe(max(duration_seconds, 0.0))


def record_batch_run(mode: str, status: str, duration_seconds: float | None = None) -> None:
    """Record a finished, failed or cancelled batch run."""
    BATCH_RUNS.labels(mode=mode, status=status).inc()
    if duration_seconds is not None:
        BATCH_DURATION.labels(mode=mode).observe(max(duration_seconds, 0.0))


def record_file_retry() -> None:
    FILE_READ_RETRIES.inc()


def record_report_failure(report_format: str) -> None:
    REPORT_GENERATION_FAILURES.labels(format=report_format.lower()).inc()


__all__ = [
    "BATCH_DURATION",
    "BATCH_RUNS",
    "FILE_READ_RETRIES",
    "REPORT_GENERATION_FAILURES",
    "RESOURCES_VALIDATED",
    "RESOURCE_VALIDATION_DURATION",
    "record_batch_run",
    "record_file_retry",
    "record_report_failure",
    "record_resource_validation",
]
