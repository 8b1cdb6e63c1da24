"""Render batch validation reports for people and pipelines.

Key Responsibilities:
    - Write HTML, JSON and CSV artifacts for a finalised batch report
    - Render a deterministic plain-text console report
    - Condense a report into a CI verdict with exit code, details and metrics

Collaborators:
    - Upstream: CLI and pipeline callers holding a :class:`BatchValidationReport`
    - Downstream: Local filesystem

Side Effects:
    - File writes run in worker threads; failures raise
      :class:`ReportGenerationError` and increment a Prometheus counter

Thread Safety:
    - Stateless apart from configuration; safe to share
"""

from __future__ import annotations

import asyncio
import csv
import html
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC
from io import StringIO
from pathlib import Path
from typing import Any

import structlog

from ..models.validation import (
    BatchValidationReport,
    IssueSeverity,
    ValidationCiSummary,
    ValidationResult,
)
from ..observability.metrics import record_report_failure
from ..utils.errors import ReportGenerationError

# ==============================================================================
# CONSTANTS
# ==============================================================================

CSV_HEADER = (
    "resource_name",
    "resource_type",
    "is_valid",
    "issue_count",
    "duration_ms",
    "issues",
)

_RULE = "=" * 80
_THIN_RULE = "-" * 80
_SEVERITY_ORDER = [severity.label for severity in sorted(IssueSeverity, reverse=True)]

_HTML_STYLES = """
body { font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5; }
.header { background: #2c3e50; color: white; padding: 20px; margin: -20px -20px 20px -20px; }
.header h1 { margin: 0; }
.batch-name { font-size: 1.2em; margin: 10px 0 5px 0; }
.timestamp { margin: 0; opacity: 0.8; }
section { background: white; padding: 20px; margin-bottom: 20px; border-radius: 5px; box-shadow: 0 2px 5px rgba(0,0,0,0.1); }
.grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 15px; margin-bottom: 20px; }
.card { padding: 10px; background: #f8f9fa; border-radius: 3px; }
.label { font-weight: bold; }
.value { float: right; }
.success { color: #28a745; font-weight: bold; }
.error { color: #dc3545; font-weight: bold; }
.warning { color: #b8860b; font-weight: bold; }
.overall-status { text-align: center; padding: 15px; border-radius: 5px; font-size: 1.2em; font-weight: bold; }
.overall-status.success { background: #d4edda; color: #155724; border: 1px solid #c3e6cb; }
.overall-status.error { background: #f8d7da; color: #721c24; border: 1px solid #f5c6cb; }
table { width: 100%; border-collapse: collapse; }
th, td { padding: 10px; text-align: left; border-bottom: 1px solid #ddd; vertical-align: top; }
th { background: #f8f9fa; }
.issue { margin: 5px 0; padding: 5px; border-left: 3px solid #ddd; }
.issue.error { border-left-color: #dc3545; }
.issue.warning { border-left-color: #ffc107; }
.issue.information { border-left-color: #17a2b8; }
.issue.fatal { border-left-color: #6f42c1; }
.severity { font-weight: bold; margin-right: 10px; }
.code { background: #e9ecef; padding: 2px 6px; border-radius: 3px; margin-right: 10px; }
.path { font-style: italic; color: #6c757d; margin-left: 10px; }
"""


# ==============================================================================
# FORMATTING HELPERS
# ==============================================================================


def format_duration(seconds: float) -> str:
    """Format a duration as ``mm:ss``; hours roll into the minutes figure."""
    whole = max(0, int(seconds))
    return f"{whole // 60:02d}:{whole % 60:02d}"


def _milliseconds(seconds: float) -> str:
    return f"{seconds * 1000:.0f}ms"


def _generated_at(report: BatchValidationReport) -> str:
    moment = report.completed_at or report.started_at
    return f"{moment.astimezone(UTC):%Y-%m-%d %H:%M:%S} UTC"


def _severity_counts(report: BatchValidationReport) -> list[tuple[str, int]]:
    counts = report.summary.issues_by_severity
    ordered = [(label, counts[label]) for label in _SEVERITY_ORDER if label in counts]
    extras = sorted((label, count) for label, count in counts.items() if label not in _SEVERITY_ORDER)
    return ordered + extras


def _status(result: ValidationResult) -> str:
    return "VALID" if result.is_valid else "INVALID"


def report_filename(report: BatchValidationReport, extension: str) -> str:
    """Timestamped artifact name, e.g. ``validation-report-20240501-101500.json``."""
    moment = (report.completed_at or report.started_at).astimezone(UTC)
    return f"validation-report-{moment:%Y%m%d-%H%M%S}.{extension}"


# ==============================================================================
# GENERATOR
# ==============================================================================


class ValidationReportGenerator:
    """Produce report artifacts and CI summaries for batch validation runs."""

    def __init__(self, *, ci_failed_resource_limit: int = 10, logger: Any | None = None) -> None:
        self.ci_failed_resource_limit = max(1, ci_failed_resource_limit)
        self._logger = logger or structlog.get_logger(__name__)

    # ------------------------------------------------------------------
    # File artifacts
    # ------------------------------------------------------------------
    async def generate_html_report(
        self, report: BatchValidationReport, output_path: str | Path
    ) -> Path:
        return await self._write("html", output_path, lambda: self.render_html(report))

    async def generate_json_report(
        self, report: BatchValidationReport, output_path: str | Path
    ) -> Path:
        return await self._write("json", output_path, lambda: self.render_json(report))

    async def generate_csv_report(
        self, report: BatchValidationReport, output_path: str | Path
    ) -> Path:
        return await self._write("csv", output_path, lambda: self.render_csv(report))

    async def generate_reports(
        self,
        report: BatchValidationReport,
        output_directory: str | Path,
        formats: Iterable[str],
    ) -> list[Path]:
        """Write every requested file format into ``output_directory``.

        ``console`` is accepted and skipped since it is rendered to stdout by
        the caller. Unknown formats raise :class:`ReportGenerationError`.
        """
        directory = Path(output_directory)
        writers: dict[str, Callable[[BatchValidationReport, Path], Any]] = {
            "html": self.generate_html_report,
            "json": self.generate_json_report,
            "csv": self.generate_csv_report,
        }
        artifacts: list[Path] = []
        for report_format in dict.fromkeys(fmt.lower() for fmt in formats):
            if report_format == "console":
                continue
            writer = writers.get(report_format)
            if writer is None:
                raise ReportGenerationError(
                    report_format, f"Unsupported report format: {report_format}"
                )
            path = directory / report_filename(report, report_format)
            artifacts.append(await writer(report, path))
        return artifacts

    # ------------------------------------------------------------------
    # Renderers
    # ------------------------------------------------------------------
    def render_json(self, report: BatchValidationReport) -> str:
        return report.model_dump_json(indent=2)

    def render_csv(self, report: BatchValidationReport) -> str:
        buffer = StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_HEADER)
        for result in report.ordered_results():
            issues = "; ".join(
                f"{issue.severity.label}:{issue.code}:{issue.description}"
                for issue in result.issues
            )
            writer.writerow(
                [
                    result.resource_name,
                    result.resource_type,
                    "true" if result.is_valid else "false",
                    len(result.issues),
                    f"{result.duration_seconds * 1000:.0f}",
                    issues,
                ]
            )
        return buffer.getvalue()

    def render_html(self, report: BatchValidationReport) -> str:
        summary = report.summary
        metrics = report.performance_metrics
        esc = html.escape
        status_class = "success" if summary.overall_success else "error"
        status_text = "PASSED" if summary.overall_success else "FAILED"

        lines = [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="UTF-8">',
            '<meta name="viewport" content="width=device-width, initial-scale=1.0">',
            "<title>FHIR Validation Report</title>",
            f"<style>{_HTML_STYLES}</style>",
            "</head>",
            "<body>",
            '<div class="header">',
            "<h1>FHIR Validation Report</h1>",
            f'<p class="batch-name">{esc(report.batch_name)}</p>',
            f'<p class="timestamp">Generated: {_generated_at(report)}</p>',
            "</div>",
            '<section class="summary">',
            "<h2>Summary</h2>",
            '<div class="grid">',
            _card("Total Resources", summary.total_resources),
            _card("Passed", summary.passed_resources, "success"),
            _card("Failed", summary.failed_resources, "error"),
            _card("Warnings", summary.warning_resources, "warning"),
            _card("Pass Rate", f"{summary.pass_rate:.1f}%"),
            _card("Duration", format_duration(report.total_duration_seconds)),
            "</div>",
            f'<div class="overall-status {status_class}">Overall Status: {status_text}</div>',
            "</section>",
            '<section class="performance">',
            "<h2>Performance Metrics</h2>",
            '<div class="grid">',
            _card("Average Time", _milliseconds(metrics.average_seconds)),
            _card("Min Time", _milliseconds(metrics.minimum_seconds)),
            _card("Max Time", _milliseconds(metrics.maximum_seconds)),
            _card("Resources/Second", f"{metrics.resources_per_second:.2f}"),
            _card("Memory", f"{metrics.memory_usage_bytes / (1024 * 1024):.1f} MiB"),
            _card("Concurrency", metrics.concurrent_operations),
            "</div>",
            "</section>",
        ]

        severity_counts = _severity_counts(report)
        if severity_counts:
            lines += ['<section class="issues-summary">', "<h2>Issues by Severity</h2>"]
            lines.append('<div class="grid">')
            lines += [_card(label, count) for label, count in severity_counts]
            lines += ["</div>", "</section>"]

        lines += [
            '<section class="detailed-results">',
            "<h2>Detailed Results</h2>",
            "<table>",
            "<thead><tr><th>Resource</th><th>Type</th><th>Status</th>"
            "<th>Issues</th><th>Duration</th></tr></thead>",
            "<tbody>",
        ]
        for result in report.ordered_results():
            row_class = "success" if result.is_valid else "error"
            lines.append(
                "<tr>"
                f"<td>{esc(result.resource_name)}</td>"
                f"<td>{esc(result.resource_type)}</td>"
                f'<td class="{row_class}">{_status(result)}</td>'
                f"<td>{_html_issues(result)}</td>"
                f"<td>{_milliseconds(result.duration_seconds)}</td>"
                "</tr>"
            )
        lines += ["</tbody>", "</table>", "</section>", "</body>", "</html>"]
        return "\n".join(lines) + "\n"

    def render_console_report(self, report: BatchValidationReport, verbose: bool = False) -> str:
        """Render the plain-text report; identical input gives identical text."""
        summary = report.summary
        metrics = report.performance_metrics
        lines = [
            _RULE,
            "FHIR VALIDATION REPORT",
            f"Batch: {report.batch_name}",
            f"Generated: {_generated_at(report)}",
            _RULE,
            "",
            "SUMMARY:",
            f"  Total Resources: {summary.total_resources}",
            f"  Passed:          {summary.passed_resources}",
            f"  Failed:          {summary.failed_resources}",
            f"  Warnings:        {summary.warning_resources}",
            f"  Pass Rate:       {summary.pass_rate:.1f}%",
            f"  Duration:        {format_duration(report.total_duration_seconds)}",
            "",
            f"OVERALL STATUS: {'PASSED' if summary.overall_success else 'FAILED'}",
            "",
            "PERFORMANCE:",
            f"  Average Time:    {_milliseconds(metrics.average_seconds)}",
            f"  Resources/Sec:   {metrics.resources_per_second:.2f}",
            "",
        ]
        severity_counts = _severity_counts(report)
        if severity_counts:
            lines.append("ISSUES BY SEVERITY:")
            lines += [f"  {label}: {count}" for label, count in severity_counts]
            lines.append("")
        if verbose:
            lines += ["DETAILED RESULTS:", _THIN_RULE]
            for result in report.ordered_results():
                lines.append(
                    f"{result.resource_name} ({result.resource_type}): {_status(result)}"
                    f" - {len(result.issues)} issues - {_milliseconds(result.duration_seconds)}"
                )
                for issue in result.issues:
                    lines.append(f"  [{issue.severity.label}] {issue.code}: {issue.description}")
                    if issue.element_path:
                        lines.append(f"    Path: {issue.element_path}")
                lines.append("")
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # CI summary
    # ------------------------------------------------------------------
    def build_ci_summary(
        self, report: BatchValidationReport, artifacts: Sequence[str | Path] = ()
    ) -> ValidationCiSummary:
        summary = report.summary
        success = summary.overall_success
        return ValidationCiSummary(
            success=success,
            exit_code=0 if success else 1,
            summary=(
                f"Validation completed: {summary.passed_resources}/{summary.total_resources}"
                f" resources passed ({summary.pass_rate:.1f}%)"
            ),
            details=self._ci_details(report),
            metrics={
                "total_resources": summary.total_resources,
                "passed_resources": summary.passed_resources,
                "failed_resources": summary.failed_resources,
                "warning_resources": summary.warning_resources,
                "pass_rate": summary.pass_rate,
                "total_issues": summary.total_issues,
                "fatal_issues": summary.fatal_issue_count,
                "validation_duration_seconds": report.total_duration_seconds,
                "average_validation_time_ms": report.performance_metrics.average_seconds * 1000,
                "resources_per_second": report.performance_metrics.resources_per_second,
            },
            artifacts=tuple(str(path) for path in artifacts),
        )

    def _ci_details(self, report: BatchValidationReport) -> str:
        summary = report.summary
        lines = [
            f"Batch: {report.batch_name}",
            f"Duration: {format_duration(report.total_duration_seconds)}",
            f"Resources: {summary.total_resources} total, {summary.passed_resources} passed,"
            f" {summary.failed_resources} failed",
        ]
        severity_counts = _severity_counts(report)
        if severity_counts:
            lines.append("Issues:")
            lines += [f"  {label}: {count}" for label, count in severity_counts]
        failed = report.failed_results()
        if failed:
            lines.append("Failed Resources:")
            for result in failed[: self.ci_failed_resource_limit]:
                lines.append(
                    f"  - {result.resource_name} ({result.resource_type}):"
                    f" {len(result.issues)} issues"
                )
            hidden = len(failed) - self.ci_failed_resource_limit
            if hidden > 0:
                lines.append(f"  ... and {hidden} more")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _write(
        self, report_format: str, output_path: str | Path, render: Callable[[], str]
    ) -> Path:
        path = Path(output_path)
        try:
            content = render()
            await asyncio.to_thread(_write_text, path, content)
        except Exception as exc:
            record_report_failure(report_format)
            self._logger.error(
                "reporting.generation.failed",
                format=report_format,
                path=str(path),
                error_type=type(exc).__name__,
            )
            raise ReportGenerationError(
                report_format,
                f"Failed to generate {report_format.upper()} report: {exc}",
            ) from exc
        self._logger.info("reporting.generation.completed", format=report_format, path=str(path))
        return path


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _card(label: str, value: object, css_class: str = "") -> str:
    value_class = f"value {css_class}".strip()
    return (
        f'<div class="card"><span class="label">{html.escape(label)}:</span> '
        f'<span class="{value_class}">{html.escape(str(value))}</span></div>'
    )


def _html_issues(result: ValidationResult) -> str:
    if not result.issues:
        return "0"
    entries = []
    for issue in result.issues:
        path = (
            f'<span class="path">Path: {html.escape(issue.element_path)}</span>'
            if issue.element_path
            else ""
        )
        entries.append(
            f'<div class="issue {issue.severity.value}">'
            f'<span class="severity">{issue.severity.label}</span>'
            f'<span class="code">{html.escape(issue.code)}</span>'
            f'<span class="description">{html.escape(issue.description)}</span>'
            f"{path}</div>"
        )
    return f"<details><summary>{len(result.issues)}</summary>{''.join(entries)}</details>"


__all__ = [
    "CSV_HEADER",
    "ValidationReportGenerator",
    "format_duration",
    "report_filename",
]
