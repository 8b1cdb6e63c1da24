"""Validation result models shared by the engine, aggregator and reports.

These models are the vocabulary passed between the single-resource
validator, the batch orchestrator and the report generator. Per-resource
models are frozen once created; :class:`BatchValidationReport` is the only
mutable container and is finalised exactly once at the end of a batch run.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ConformanceModel(BaseModel):
    """Base model for immutable conformance records."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class IssueSeverity(str, Enum):
    """Issue severity, ordered ``information < warning < error < fatal``."""

    INFORMATION = "information"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, IssueSeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, IssueSeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, IssueSeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, IssueSeverity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {"information": 0, "warning": 1, "error": 2, "fatal": 3}


def pass_rate_percent(passed: int, total: int) -> float:
    """``100 * passed / total``; an empty batch counts as 100%."""
    if total == 0:
        return 100.0
    return 100.0 * passed / total


def meets_pass_threshold(passed: int, total: int, threshold: float) -> bool:
    """Whether ``passed`` of ``total`` reaches ``threshold`` percent, inclusively.

    Compared as ``passed * 100 >= threshold * total`` so a batch sitting
    exactly on the threshold never loses to float rounding of the rate.
    """
    if total == 0:
        return True
    return passed * 100 >= threshold * total


class ValidationIssue(ConformanceModel):
    """A single finding produced while checking one resource."""

    severity: IssueSeverity
    code: str
    description: str
    element_path: str = ""
    location: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(ConformanceModel):
    """Outcome of validating one resource."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    resource_name: str = "Unknown"
    resource_type: str = "Unknown"
    issues: tuple[ValidationIssue, ...] = ()
    validated_profiles: tuple[str, ...] = ()
    duration_seconds: float = Field(default=0.0, ge=0.0)
    validated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        return any(issue.severity >= IssueSeverity.ERROR for issue in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(issue.severity is IssueSeverity.WARNING for issue in self.issues)

    @property
    def issue_count_by_severity(self) -> dict[str, int]:
        return dict(Counter(issue.severity.label for issue in self.issues))


class ValidationConfiguration(ConformanceModel):
    """Immutable configuration for one batch run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    profile_urls: tuple[str, ...] = ()
    minimum_pass_rate_threshold: float = Field(default=95.0, ge=0.0, le=100.0)
    maximum_fatal_errors: int = Field(default=0, ge=0)
    include_warnings: bool = True
    include_information: bool = False
    max_issues_per_resource: int = Field(default=100, ge=1)
    validation_timeout_seconds: float = Field(default=30.0, gt=0)


class ValidationSummary(ConformanceModel):
    """Summary statistics for a batch."""

    total_resources: int = 0
    passed_resources: int = 0
    failed_resources: int = 0
    warning_resources: int = 0
    total_issues: int = 0
    fatal_issue_count: int = 0
    issues_by_severity: dict[str, int] = Field(default_factory=dict)
    issues_by_resource_type: dict[str, int] = Field(default_factory=dict)
    overall_success: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pass_rate(self) -> float:
        """Percentage of passing resources; an empty batch counts as 100%."""
        return pass_rate_percent(self.passed_resources, self.total_resources)


class ValidationPerformanceMetrics(ConformanceModel):
    """Timing and throughput figures for a batch."""

    average_seconds: float = 0.0
    minimum_seconds: float = 0.0
    maximum_seconds: float = 0.0
    resources_per_second: float = 0.0
    memory_usage_bytes: int = 0
    concurrent_operations: int = 0


class BatchValidationProgress(ConformanceModel):
    """Transient progress snapshot emitted after each resource completes."""

    current_resource: int
    total_resources: int
    current_resource_name: str = ""
    current_stage: str = ""
    estimated_seconds_remaining: float | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def progress_percentage(self) -> float:
        if self.total_resources <= 0:
            return 0.0
        return self.current_resource / self.total_resources * 100


class BatchValidationReport(BaseModel):
    """Validation report for a batch of resources.

    Created with :meth:`start` before processing and completed with
    :meth:`finalize` once every worker has joined.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    batch_name: str = ""
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    total_duration_seconds: float = 0.0
    configuration: ValidationConfiguration = Field(default_factory=ValidationConfiguration)
    results: list[ValidationResult] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)
    performance_metrics: ValidationPerformanceMetrics = Field(
        default_factory=ValidationPerformanceMetrics
    )

    @classmethod
    def start(
        cls, batch_name: str, configuration: ValidationConfiguration
    ) -> BatchValidationReport:
        return cls(batch_name=batch_name, configuration=configuration)

    @property
    def is_finalized(self) -> bool:
        return self.completed_at is not None

    def finalize(
        self,
        results: Iterable[ValidationResult],
        *,
        summary: ValidationSummary,
        performance_metrics: ValidationPerformanceMetrics,
        completed_at: datetime,
        total_duration_seconds: float,
    ) -> BatchValidationReport:
        """Attach results and computed statistics; may only be called once."""
        if self.is_finalized:
            raise RuntimeError(f"Report {self.id} has already been finalized")
        self.results = sorted(results, key=lambda result: result.resource_name)
        self.summary = summary
        self.performance_metrics = performance_metrics
        self.completed_at = completed_at
        self.total_duration_seconds = total_duration_seconds
        return self

    def ordered_results(self) -> list[ValidationResult]:
        """Results sorted by resource name, independent of completion order."""
        return sorted(self.results, key=lambda result: result.resource_name)

    def failed_results(self) -> list[ValidationResult]:
        return [result for result in self.ordered_results() if not result.is_valid]


class ValidationCiSummary(ConformanceModel):
    """Condensed pass/fail verdict for automated pipelines."""

    success: bool
    exit_code: Literal[0, 1]
    summary: str
    details: str
    metrics: dict[str, Any] = Field(default_factory=dict)
    artifacts: tuple[str, ...] = ()


__all__ = [
    "BatchValidationProgress",
    "BatchValidationReport",
    "ConformanceModel",
    "IssueSeverity",
    "ValidationCiSummary",
    "ValidationConfiguration",
    "ValidationIssue",
    "ValidationPerformanceMetrics",
    "ValidationResult",
    "ValidationSummary",
    "meets_pass_threshold",
    "pass_rate_percent",
]
