"""Domain models for conformance validation runs."""

from .validation import (
    BatchValidationProgress,
    BatchValidationReport,
    ConformanceModel,
    IssueSeverity,
    ValidationCiSummary,
    ValidationConfiguration,
    ValidationIssue,
    ValidationPerformanceMetrics,
    ValidationResult,
    ValidationSummary,
)

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
]
