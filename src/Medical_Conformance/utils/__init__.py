"""Utility modules shared across the conformance engine."""

from .errors import (
    ConformanceError,
    FileProcessingError,
    FoundationError,
    OperationCancelledError,
    ParseError,
    PreconditionError,
    ProblemDetail,
    ReportGenerationError,
    ValidationEngineError,
)

__all__ = [
    "ConformanceError",
    "FileProcessingError",
    "FoundationError",
    "OperationCancelledError",
    "ParseError",
    "PreconditionError",
    "ProblemDetail",
    "ReportGenerationError",
    "ValidationEngineError",
]
