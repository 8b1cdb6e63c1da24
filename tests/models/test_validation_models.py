from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from Medical_Conformance.models import (
    BatchValidationProgress,
    BatchValidationReport,
    IssueSeverity,
    ValidationConfiguration,
    ValidationIssue,
    ValidationResult,
    ValidationSummary,
)


def _issue(severity: IssueSeverity) -> ValidationIssue:
    return ValidationIssue(severity=severity, code="code", description="desc")


def test_severity_ordering():
    assert IssueSeverity.INFORMATION < IssueSeverity.WARNING < IssueSeverity.ERROR
    assert IssueSeverity.FATAL > IssueSeverity.ERROR
    assert max(IssueSeverity) is IssueSeverity.FATAL
    assert IssueSeverity.WARNING.label == "Warning"


@pytest.mark.parametrize(
    ("severities", "valid", "warnings"),
    [
        ((), True, False),
        ((IssueSeverity.INFORMATION,), True, False),
        ((IssueSeverity.WARNING,), True, True),
        ((IssueSeverity.WARNING, IssueSeverity.ERROR), False, True),
        ((IssueSeverity.FATAL,), False, False),
    ],
)
def test_is_valid_tracks_error_and_fatal_issues(severities, valid, warnings):
    result = ValidationResult(issues=tuple(_issue(severity) for severity in severities))
    assert result.is_valid is valid
    assert result.has_errors is not valid
    assert result.has_warnings is warnings


def test_result_defaults_and_counts():
    result = ValidationResult(
        issues=(_issue(IssueSeverity.ERROR), _issue(IssueSeverity.ERROR), _issue(IssueSeverity.WARNING))
    )
    assert result.resource_name == "Unknown"
    assert result.resource_type == "Unknown"
    assert result.issue_count_by_severity == {"Error": 2, "Warning": 1}
    assert result.model_dump()["is_valid"] is False


def test_result_is_immutable_and_rejects_negative_duration():
    result = ValidationResult()
    with pytest.raises(ValidationError):
        result.resource_name = "other"  # type: ignore[misc]
    with pytest.raises(ValidationError):
        ValidationResult(duration_seconds=-1)


def test_summary_pass_rate():
    assert ValidationSummary().pass_rate == 100.0
    summary = ValidationSummary(total_resources=3, passed_resources=2, failed_resources=1)
    assert summary.pass_rate == pytest.approx(66.666, rel=1e-3)


def test_configuration_rejects_out_of_range_values():
    with pytest.raises(ValidationError):
        ValidationConfiguration(minimum_pass_rate_threshold=101)
    with pytest.raises(ValidationError):
        ValidationConfiguration(max_issues_per_resource=0)
    with pytest.raises(ValidationError):
        ValidationConfiguration(unknown_field=True)


def test_progress_percentage():
    progress = BatchValidationProgress(current_resource=1, total_resources=4)
    assert progress.progress_percentage == 25.0
    assert BatchValidationProgress(current_resource=0, total_resources=0).progress_percentage == 0.0


def test_report_finalize_sorts_results_and_only_runs_once():
    report = BatchValidationReport.start("Batch", ValidationConfiguration())
    assert not report.is_finalized
    results = [ValidationResult(resource_name="b"), ValidationResult(resource_name="a")]
    report.finalize(
        results,
        summary=ValidationSummary(total_resources=2, passed_resources=2),
        performance_metrics=report.performance_metrics,
        completed_at=datetime.now(UTC),
        total_duration_seconds=0.5,
    )
    assert report.is_finalized
    assert [result.resource_name for result in report.results] == ["a", "b"]
    assert report.completed_at >= report.started_at
    with pytest.raises(RuntimeError):
        report.finalize(
            [],
            summary=ValidationSummary(),
            performance_metrics=report.performance_metrics,
            completed_at=datetime.now(UTC),
            total_duration_seconds=0.0,
        )
