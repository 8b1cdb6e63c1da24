"""Single-resource validation.

Key Responsibilities:
    - Wrap the resource parser and conformance engine into one operation that
      always returns a :class:`ValidationResult`
    - Translate native engine issues through an explicit severity table
    - Convert parse and engine failures into a single Fatal issue so a batch
      caller never has to guard individual resources

Collaborators:
    - Upstream: :class:`~Medical_Conformance.validation.batch.BatchValidator`
      and the CLI
    - Downstream: :class:`ResourceParser` and :class:`ConformanceEngine`
      implementations

Side Effects:
    - Structured logging of identifiers and counts only, never payload content
    - Prometheus counters for validated resources

Thread Safety:
    - Safe for concurrent use from many asyncio tasks; engine calls run in
      worker threads
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from ..models.validation import (
    IssueSeverity,
    ValidationConfiguration,
    ValidationIssue,
    ValidationResult,
)
from ..observability.metrics import record_resource_validation
from ..utils.errors import OperationCancelledError, ValidationEngineError
from .engine import ConformanceEngine, EngineIssue, JsonSchemaConformanceEngine
from .parser import FhirResource, FhirResourceParser, ResourceParser, Serialization

PARSE_ERROR = "PARSE_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"

# OperationOutcome severity -> report severity. Anything else maps to error.
SEVERITY_MAP: dict[str, IssueSeverity] = {
    "information": IssueSeverity.INFORMATION,
    "warning": IssueSeverity.WARNING,
    "error": IssueSeverity.ERROR,
    "fatal": IssueSeverity.FATAL,
}


def raise_if_cancelled(cancel_event: asyncio.Event | None) -> None:
    """Raise :class:`OperationCancelledError` once the cancel signal is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError()


def map_severity(native: str | None) -> IssueSeverity:
    return SEVERITY_MAP.get((native or "").lower(), IssueSeverity.ERROR)


def translate_issue(native: EngineIssue) -> ValidationIssue:
    details: dict[str, Any] = {"issue_type": native.code}
    if native.profile:
        details["profile"] = native.profile
    return ValidationIssue(
        severity=map_severity(native.severity),
        code=native.code or "UNKNOWN",
        description=native.diagnostics or "No description available",
        element_path=", ".join(native.location),
        location=", ".join(native.expression),
        details=details,
    )


def fatal_issue(
    code: str, description: str, element_path: str, exc: BaseException, **details: Any
) -> ValidationIssue:
    return ValidationIssue(
        severity=IssueSeverity.FATAL,
        code=code,
        description=description,
        element_path=element_path,
        details={"exception": type(exc).__name__, **details},
    )


class ResourceValidator:
    """Validate individual resources and normalise the outcome."""

    def __init__(
        self,
        *,
        engine: ConformanceEngine | None = None,
        parser: ResourceParser | None = None,
        configuration: ValidationConfiguration | None = None,
        logger: Any | None = None,
    ) -> None:
        self._engine = engine or JsonSchemaConformanceEngine()
        self._parser = parser or FhirResourceParser()
        self.configuration = configuration or ValidationConfiguration()
        self._logger = logger or structlog.get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def validate(
        self,
        resource: FhirResource,
        profile_urls: Sequence[str] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ValidationResult:
        """Validate a parsed resource.

        Engine failures become a Fatal ``VALIDATION_ERROR`` issue. Only
        cancellation propagates.
        """
        return await self._validate(
            resource, self._profiles(profile_urls), cancel_event, time.perf_counter()
        )

    async def validate_text(
        self,
        text: str,
        serialization: Serialization,
        profile_urls: Sequence[str] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ValidationResult:
        """Parse raw text and validate the resulting resource.

        Parse failures become a Fatal ``PARSE_ERROR`` issue and the engine is
        not consulted.
        """
        started = time.perf_counter()
        profiles = self._profiles(profile_urls)
        raise_if_cancelled(cancel_event)
        try:
            resource = await asyncio.to_thread(self._parser.parse, text, serialization)
        except OperationCancelledError:
            raise
        except Exception as exc:
            self._logger.warning(
                "validation.resource.parse_failed",
                serialization=serialization,
                error_type=type(exc).__name__,
            )
            issue = fatal_issue(
                PARSE_ERROR,
                f"Failed to parse {serialization.upper()} resource: {exc}",
                "Resource",
                exc,
            )
            return self._build_result(
                resource_name="Unknown",
                resource_type="Unknown",
                issues=(issue,),
                profiles=profiles,
                started=started,
            )
        return await self._validate(resource, profiles, cancel_event, started)

    async def validate_json(
        self,
        text: str,
        profile_urls: Sequence[str] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ValidationResult:
        return await self.validate_text(text, "json", profile_urls, cancel_event=cancel_event)

    async def validate_xml(
        self,
        text: str,
        profile_urls: Sequence[str] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ValidationResult:
        return await self.validate_text(text, "xml", profile_urls, cancel_event=cancel_event)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _profiles(self, profile_urls: Sequence[str] | None) -> tuple[str, ...]:
        if profile_urls is None:
            return tuple(self.configuration.profile_urls)
        return tuple(profile_urls)

    async def _validate(
        self,
        resource: FhirResource,
        profiles: tuple[str, ...],
        cancel_event: asyncio.Event | None,
        started: float,
    ) -> ValidationResult:
        raise_if_cancelled(cancel_event)
        self._logger.debug(
            "validation.resource.started",
            resource_type=resource.resource_type,
            resource_id=resource.id,
            profiles=len(profiles),
        )
        try:
            translated = await asyncio.to_thread(self._evaluate, resource, profiles)
        except ValidationEngineError as exc:
            failure = exc.__cause__ or exc
            self._logger.error(
                "validation.resource.engine_failed",
                resource_type=resource.resource_type,
                resource_id=resource.id,
                engine=exc.engine,
                error_type=type(failure).__name__,
            )
            issues: tuple[ValidationIssue, ...] = (
                fatal_issue(
                    VALIDATION_ERROR,
                    f"Validation failed with exception: {exc}",
                    "Resource",
                    failure,
                    engine=exc.engine or type(self._engine).__name__,
                ),
            )
        else:
            issues = self._filter(translated)
        raise_if_cancelled(cancel_event)
        result = self._build_result(
            resource_name=resource.name,
            resource_type=resource.resource_type,
            issues=issues,
            profiles=profiles,
            started=started,
        )
        self._logger.debug(
            "validation.resource.completed",
            resource_type=resource.resource_type,
            resource_id=resource.id,
            is_valid=result.is_valid,
            issues=len(result.issues),
        )
        return result

    def _evaluate(
        self, resource: FhirResource, profiles: tuple[str, ...]
    ) -> list[ValidationIssue]:
        """Run the engine and translate its issues, wrapping any engine failure."""
        try:
            return [translate_issue(issue) for issue in self._engine.evaluate(resource, profiles)]
        except ValidationEngineError:
            raise
        except Exception as exc:
            raise ValidationEngineError(
                str(exc) or type(exc).__name__, engine=type(self._engine).__name__
            ) from exc

    def _filter(self, issues: Iterable[ValidationIssue]) -> tuple[ValidationIssue, ...]:
        config = self.configuration
        kept = [
            issue
            for issue in issues
            if (config.include_warnings or issue.severity is not IssueSeverity.WARNING)
            and (config.include_information or issue.severity is not IssueSeverity.INFORMATION)
        ]
        if len(kept) > config.max_issues_per_resource:
            # Most severe first so truncation never hides an error.
            kept.sort(key=lambda issue: issue.severity.rank, reverse=True)
            kept = kept[: config.max_issues_per_resource]
        return tuple(kept)

    def _build_result(
        self,
        *,
        resource_name: str,
        resource_type: str,
        issues: tuple[ValidationIssue, ...],
        profiles: tuple[str, ...],
        started: float,
    ) -> ValidationResult:
        duration = time.perf_counter() - started
        result = ValidationResult(
            resource_name=resource_name,
            resource_type=resource_type,
            issues=issues,
            validated_profiles=profiles,
            duration_seconds=duration,
        )
        record_resource_validation(result.is_valid, duration)
        return result


__all__ = [
    "PARSE_ERROR",
    "SEVERITY_MAP",
    "VALIDATION_ERROR",
    "ResourceValidator",
    "fatal_issue",
    "map_severity",
    "raise_if_cancelled",
    "translate_issue",
]
