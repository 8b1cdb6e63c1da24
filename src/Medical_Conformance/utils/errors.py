"""Error taxonomy for the conformance engine.

Key Responsibilities:
    - Provide RFC 7807 compliant problem details so callers (CLI, pipelines)
      can render failures consistently
    - Define the typed failures raised by parsing, conformance checking, file
      processing, report generation, cancellation and batch preconditions

Collaborators:
    - Upstream: Parser, engine, batch orchestrator and report generator raise
      these exceptions
    - Downstream: The single-resource validator converts per-item failures
      into Fatal issues; the CLI maps batch-level failures to exit codes

Side Effects:
    - None; helpers are pure data containers

Thread Safety:
    - Thread-safe; instances are not shared between workers
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping

# ==============================================================================
# TYPE DEFINITIONS
# ==============================================================================

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


@dataclass(slots=True)
class ProblemDetail:
    """Lightweight problem details object compliant with RFC 7807."""

    title: str
    status: int
    detail: str | None = None
    type: str = "about:blank"
    instance: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def model_dump(self) -> dict[str, Any]:
        """Return a dictionary representation with optional fields dropped."""
        payload = {key: value for key, value in asdict(self).items() if value is not None}
        if not payload.get("extra"):
            payload.pop("extra", None)
        return payload


class FoundationError(RuntimeError):
    """Base exception that carries a :class:`ProblemDetail` instance."""

    def __init__(
        self,
        message: str,
        *,
        status: int = 500,
        detail: str | None = None,
        type: str = "about:blank",
        instance: str | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialise the exception with structured problem detail attributes.

        Args:
            message: Human readable error summary.
            status: Status code associated with the problem.
            detail: Optional detailed description of the failure.
            type: Problem type URI, defaults to ``about:blank``.
            instance: Optional URI reference identifying the specific occurrence.
            extra: Additional attributes included in the serialized payload.
        """
        super().__init__(message)
        self.problem = ProblemDetail(
            title=message,
            status=status,
            detail=detail,
            type=type,
            instance=instance,
            extra=extra or {},
        )


# ==============================================================================
# CONFORMANCE ERRORS
# ==============================================================================


class ConformanceError(FoundationError):
    """Base class for failures raised inside the conformance engine."""


class ParseError(ConformanceError):
    """Raised when raw text cannot be parsed into a resource document."""

    def __init__(self, message: str, *, serialization: str | None = None) -> None:
        super().__init__(
            message,
            status=422,
            type="urn:medical-conformance:parse-error",
            extra={"serialization": serialization} if serialization else None,
        )
        self.serialization = serialization


class ValidationEngineError(ConformanceError):
    """Raised when the conformance engine itself fails on a document."""

    def __init__(self, message: str, *, engine: str | None = None) -> None:
        super().__init__(
            message,
            status=500,
            type="urn:medical-conformance:engine-error",
            extra={"engine": engine} if engine else None,
        )
        self.engine = engine


class FileProcessingError(ConformanceError):
    """Raised when a resource file could not be read, even after retries."""

    def __init__(self, path: str | Path, message: str | None = None) -> None:
        self.path = str(path)
        super().__init__(
            message or f"Failed to load resource from: {self.path}",
            status=500,
            type="urn:medical-conformance:file-processing-error",
            extra={"path": self.path},
        )


class ReportGenerationError(ConformanceError):
    """Raised when a report artifact could not be written."""

    def __init__(self, report_format: str, message: str) -> None:
        self.report_format = report_format
        super().__init__(
            message,
            status=500,
            type="urn:medical-conformance:report-generation-error",
            extra={"format": report_format},
        )


class OperationCancelledError(ConformanceError):
    """Raised when the caller's cancel signal is observed."""

    def __init__(self, message: str = "Validation was cancelled") -> None:
        super().__init__(message, status=499, type="urn:medical-conformance:cancelled")


class PreconditionError(ConformanceError):
    """Raised before any processing when a batch cannot start."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status=400, type="urn:medical-conformance:precondition")
