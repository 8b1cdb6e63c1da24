"""Summary statistics and performance metrics for batch results.

Counting conventions:
    - ``passed`` and ``failed`` partition the results by ``is_valid``.
    - ``warning_resources`` counts results with at least one warning-severity
      issue regardless of validity, so a valid-with-warnings resource is both
      passed and warning. It is not a subset of failed.
    - An empty batch has a 100% pass rate and succeeds overall. This is a
      default that callers can gate on ``total_resources`` if they disagree.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from statistics import fmean

import psutil

from ..models.validation import (
    IssueSeverity,
    ValidationConfiguration,
    ValidationPerformanceMetrics,
    ValidationResult,
    ValidationSummary,
    meets_pass_threshold,
)


def summarize(
    results: Sequence[ValidationResult], configuration: ValidationConfiguration
) -> ValidationSummary:
    """Compute counts, issue groupings and the overall verdict."""
    total = len(results)
    passed = sum(1 for result in results if result.is_valid)
    severity_counts = Counter(
        issue.severity.label for result in results for issue in result.issues
    )
    type_counts: Counter[str] = Counter()
    for result in results:
        type_counts[result.resource_type] += len(result.issues)
    fatal_count = severity_counts.get(IssueSeverity.FATAL.label, 0)
    overall_success = (
        meets_pass_threshold(passed, total, configuration.minimum_pass_rate_threshold)
        and fatal_count <= configuration.maximum_fatal_errors
    )
    return ValidationSummary(
        total_resources=total,
        passed_resources=passed,
        failed_resources=total - passed,
        warning_resources=sum(1 for result in results if result.has_warnings),
        total_issues=sum(len(result.issues) for result in results),
        fatal_issue_count=fatal_count,
        issues_by_severity=dict(severity_counts),
        issues_by_resource_type=dict(type_counts),
        overall_success=overall_success,
    )


def memory_snapshot_bytes() -> int:
    """Resident memory of this process right now. Not a peak figure."""
    return int(psutil.Process().memory_info().rss)


def compute_performance_metrics(
    results: Sequence[ValidationResult],
    wall_clock_seconds: float,
    concurrency: int,
) -> ValidationPerformanceMetrics:
    """Compute timing figures; zero-duration entries are left out of averages."""
    durations = [result.duration_seconds for result in results if result.duration_seconds > 0]
    return ValidationPerformanceMetrics(
        average_seconds=fmean(durations) if durations else 0.0,
        minimum_seconds=min(durations) if durations else 0.0,
        maximum_seconds=max(durations) if durations else 0.0,
        resources_per_second=len(results) / wall_clock_seconds if wall_clock_seconds > 0 else 0.0,
        memory_usage_bytes=memory_snapshot_bytes(),
        concurrent_operations=concurrency,
    )


def aggregate(
    results: Sequence[ValidationResult],
    configuration: ValidationConfiguration,
    *,
    wall_clock_seconds: float,
    concurrency: int,
) -> tuple[ValidationSummary, ValidationPerformanceMetrics]:
    return (
        summarize(results, configuration),
        compute_performance_metrics(results, wall_clock_seconds, concurrency),
    )


__all__ = ["aggregate", "compute_performance_metrics", "memory_snapshot_bytes", "summarize"]
