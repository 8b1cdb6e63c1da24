"""Report rendering for batch validation runs."""

from .generator import (
    CSV_HEADER,
    ValidationReportGenerator,
    format_duration,
    report_filename,
)

__all__ = [
    "CSV_HEADER",
    "ValidationReportGenerator",
    "format_duration",
    "report_filename",
]
