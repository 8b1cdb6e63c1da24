"""Observability helpers for validation runs."""

from __future__ import annotations

from .metrics import (
    record_batch_run,
    record_file_retry,
    record_report_failure,
    record_resource_validation,
)

__all__ = [
    "record_batch_run",
    "record_file_retry",
    "record_report_failure",
    "record_resource_validation",
]
