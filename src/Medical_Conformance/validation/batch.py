"""Batch orchestration for conformance validation.

Key Responsibilities:
    - Discover resource files under a directory, or accept in-memory resources
    - Run the single-resource validator under bounded concurrency
    - Isolate per-item failures into that item's own result
    - Report progress after each item and honour a cooperative cancel signal
    - Aggregate results into a finalised :class:`BatchValidationReport`

Collaborators:
    - Upstream: CLI and pipeline callers
    - Downstream: :class:`ResourceValidator`, :class:`RetryPolicy`,
      :mod:`Medical_Conformance.validation.aggregation`

Side Effects:
    - Reads files from disk; emits structured logs and Prometheus metrics

Thread Safety:
    - A :class:`BatchValidator` holds no per-run state and may run several
      batches concurrently; each run owns its counter and result list

Concurrency Model:
    - Directory mode processes files in chunks of
      ``min(10, max(1, total // 4))``; chunks run one after another and the
      files of a chunk run concurrently.
    - In-memory mode bounds concurrency with a semaphore sized to the CPU
      count.
    - Workers return their results and are joined together. When one raises,
      its siblings are cancelled and awaited before the error propagates.
"""

from __future__ import annotations

import asyncio
import itertools
import os
import time
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

import structlog

from ..models.validation import (
    BatchValidationProgress,
    BatchValidationReport,
    ValidationConfiguration,
    ValidationResult,
)
from ..observability.metrics import record_batch_run, record_resource_validation
from ..utils.errors import FileProcessingError, OperationCancelledError, PreconditionError
from ..utils.logging import bind_batch_id, reset_batch_id
from .aggregation import aggregate
from .parser import FhirResource, serialization_for_path
from .resilience import RetryPolicy, TenacityRetryPolicy
from .validator import ResourceValidator, fatal_issue, raise_if_cancelled

FILE_PROCESSING_ERROR = "FILE_PROCESSING_ERROR"
RESOURCE_PROCESSING_ERROR = "RESOURCE_PROCESSING_ERROR"

ProgressObserver = Callable[[BatchValidationProgress], Any]

T = TypeVar("T")


def chunk_size_for(total: int, max_chunk_size: int = 10) -> int:
    """Chunk size for directory batches: ``min(cap, max(1, total // 4))``."""
    return min(max_chunk_size, max(1, total // 4))


def _chunks(items: Sequence[Path], size: int) -> Iterator[Sequence[Path]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def _join(awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """Gather workers; on failure cancel and await the rest, then re-raise."""
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class _ProgressTracker:
    """Counts completed items and forwards snapshots to an observer."""

    def __init__(
        self,
        total: int,
        stage: str,
        observer: ProgressObserver | None,
        logger: Any,
    ) -> None:
        self._total = total
        self._stage = stage
        self._observer = observer
        self._logger = logger
        self._counter = itertools.count(1)
        self._started = time.perf_counter()

    def completed(self, resource_name: str) -> None:
        current = next(self._counter)
        if self._observer is None:
            return
        elapsed = time.perf_counter() - self._started
        remaining = elapsed / current * (self._total - current)
        snapshot = BatchValidationProgress(
            current_resource=current,
            total_resources=self._total,
            current_resource_name=resource_name,
            current_stage=self._stage,
            estimated_seconds_remaining=remaining,
        )
        asyncio.get_running_loop().call_soon(self._notify, snapshot)

    def _notify(self, snapshot: BatchValidationProgress) -> None:
        try:
            self._observer(snapshot)  # type: ignore[misc]
        except Exception as exc:
            self._logger.warning(
                "validation.progress.observer_failed", error_type=type(exc).__name__
            )


class BatchValidator:
    """Validate many resources and produce a finalised batch report.

    Args:
        validator: Single-resource validator. Built from ``configuration``
            when omitted.
        configuration: Run configuration. Defaults to the validator's.
        retry_policy: Policy wrapped around file discovery and reads.
        max_concurrency: Bound for in-memory batches, defaults to CPU count.
        max_chunk_size: Upper bound on directory chunk size.
        logger: Structlog logger; defaults to this module's logger.
    """

    def __init__(
        self,
        validator: ResourceValidator | None = None,
        *,
        configuration: ValidationConfiguration | None = None,
        retry_policy: RetryPolicy | None = None,
        max_concurrency: int | None = None,
        max_chunk_size: int = 10,
        logger: Any | None = None,
    ) -> None:
        self._logger = logger or structlog.get_logger(__name__)
        if validator is None:
            validator = ResourceValidator(configuration=configuration, logger=self._logger)
        self._validator = validator
        self.configuration = configuration or validator.configuration
        self._retry = retry_policy or TenacityRetryPolicy(logger=self._logger)
        self.max_concurrency = max(1, max_concurrency or os.cpu_count() or 1)
        self.max_chunk_size = max(1, max_chunk_size)

    # ------------------------------------------------------------------
    # Directory mode
    # ------------------------------------------------------------------
    async def validate_directory(
        self,
        directory: str | Path,
        pattern: str = "*",
        profile_urls: Sequence[str] | None = None,
        *,
        progress: ProgressObserver | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchValidationReport:
        """Validate every ``.json``/``.xml`` file under ``directory``.

        Raises:
            PreconditionError: If ``directory`` does not exist or is not a
                directory. Raised before any processing starts.
            OperationCancelledError: If ``cancel_event`` is set during the run.
        """
        root = Path(directory)
        if not root.exists():
            raise PreconditionError(f"Directory not found: {root}")
        if not root.is_dir():
            raise PreconditionError(f"Not a directory: {root}")

        configuration = self._configuration_for(profile_urls)
        report = BatchValidationReport.start(f"Directory Validation: {root}", configuration)
        token = bind_batch_id(report.id)
        started = time.perf_counter()
        try:
            raise_if_cancelled(cancel_event)
            files = await self._retry.execute(
                lambda: asyncio.to_thread(self._discover, root, pattern or "*")
            )
            total = len(files)
            chunk_size = chunk_size_for(total, self.max_chunk_size)
            self._logger.info(
                "validation.batch.discovered",
                directory=str(root),
                files=total,
                chunk_size=chunk_size,
            )
            tracker = _ProgressTracker(total, "Validating files", progress, self._logger)
            results: list[ValidationResult] = []
            for chunk in _chunks(files, chunk_size):
                raise_if_cancelled(cancel_event)
                chunk_results = await _join(
                    self._process_file(path, root, configuration, tracker, cancel_event)
                    for path in chunk
                )
                results.extend(chunk_results)
            raise_if_cancelled(cancel_event)
        except (OperationCancelledError, asyncio.CancelledError):
            self._logger.warning("validation.batch.cancelled", directory=str(root))
            record_batch_run("directory", "cancelled")
            raise
        except Exception as exc:
            self._logger.error(
                "validation.batch.failed", directory=str(root), error_type=type(exc).__name__
            )
            record_batch_run("directory", "failed")
            raise
        finally:
            reset_batch_id(token)

        return self._finalize(report, results, started, concurrency=chunk_size, mode="directory")

    async def validate_file(
        self,
        path: str | Path,
        profile_urls: Sequence[str] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchValidationReport:
        """Validate one resource file and wrap the outcome in a batch report."""
        file_path = Path(path)
        if not file_path.is_file():
            raise PreconditionError(f"Resource file not found: {file_path}")
        if serialization_for_path(file_path) is None:
            raise PreconditionError(
                "Unsupported file format. Only .json and .xml files are supported."
            )

        configuration = self._configuration_for(profile_urls)
        report = BatchValidationReport.start(
            f"Single Resource Validation: {file_path.name}", configuration
        )
        token = bind_batch_id(report.id)
        started = time.perf_counter()
        try:
            tracker = _ProgressTracker(1, "Validating file", None, self._logger)
            result = await self._process_file(
                file_path, file_path.parent, configuration, tracker, cancel_event
            )
        except (OperationCancelledError, asyncio.CancelledError):
            record_batch_run("file", "cancelled")
            raise
        finally:
            reset_batch_id(token)
        return self._finalize(report, [result], started, concurrency=1, mode="file")

    # ------------------------------------------------------------------
    # In-memory mode
    # ------------------------------------------------------------------
    async def validate_batch(
        self,
        resources: Iterable[FhirResource | Mapping[str, Any]],
        profile_urls: Sequence[str] | None = None,
        *,
        progress: ProgressObserver | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchValidationReport:
        """Validate already materialised resources.

        Plain mappings are wrapped with :meth:`FhirResource.from_mapping`; a
        mapping without ``resourceType`` becomes a failed result.
        """
        resource_list = list(resources)
        configuration = self._configuration_for(profile_urls)
        report = BatchValidationReport.start(
            f"Batch Validation: {len(resource_list)} resources", configuration
        )
        token = bind_batch_id(report.id)
        started = time.perf_counter()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tracker = _ProgressTracker(
            len(resource_list), "Validating resources", progress, self._logger
        )

        async def _run(index: int, item: FhirResource | Mapping[str, Any]) -> ValidationResult:
            async with semaphore:
                raise_if_cancelled(cancel_event)
                result = await self._process_resource(index, item, configuration, cancel_event)
                tracker.completed(result.resource_name)
                return result

        self._logger.info("validation.batch.started", resources=len(resource_list))
        try:
            raise_if_cancelled(cancel_event)
            results = await _join(
                _run(index, item) for index, item in enumerate(resource_list)
            )
        except (OperationCancelledError, asyncio.CancelledError):
            self._logger.warning("validation.batch.cancelled", resources=len(resource_list))
            record_batch_run("memory", "cancelled")
            raise
        except Exception as exc:
            self._logger.error("validation.batch.failed", error_type=type(exc).__name__)
            record_batch_run("memory", "failed")
            raise
        finally:
            reset_batch_id(token)

        return self._finalize(
            report, results, started, concurrency=self.max_concurrency, mode="memory"
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _configuration_for(self, profile_urls: Sequence[str] | None) -> ValidationConfiguration:
        if profile_urls is None:
            return self.configuration
        return self.configuration.model_copy(update={"profile_urls": tuple(profile_urls)})

    @staticmethod
    def _discover(root: Path, pattern: str) -> list[Path]:
        return sorted(
            path
            for path in root.rglob(pattern)
            if path.is_file() and serialization_for_path(path) is not None
        )

    async def _process_file(
        self,
        path: Path,
        root: Path,
        configuration: ValidationConfiguration,
        tracker: _ProgressTracker,
        cancel_event: asyncio.Event | None,
    ) -> ValidationResult:
        name = path.relative_to(root).as_posix()
        raise_if_cancelled(cancel_event)
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._read_and_validate(path, configuration, cancel_event),
                timeout=configuration.validation_timeout_seconds,
            )
            result = result.model_copy(update={"resource_name": name})
        except OperationCancelledError:
            raise
        except Exception as exc:
            self._logger.error(
                "validation.file.failed", file=name, error_type=type(exc).__name__
            )
            result = self._failure_result(
                name,
                FILE_PROCESSING_ERROR,
                f"Error processing file: {str(exc) or type(exc).__name__}",
                "File",
                exc,
                started,
                file_path=str(path),
            )
        tracker.completed(name)
        return result

    async def _read_and_validate(
        self,
        path: Path,
        configuration: ValidationConfiguration,
        cancel_event: asyncio.Event | None,
    ) -> ValidationResult:
        serialization = serialization_for_path(path)
        if serialization is None:
            raise FileProcessingError(path, f"Unrecognised resource file type: {path.suffix}")
        try:
            content = await self._retry.execute(
                lambda: asyncio.to_thread(path.read_text, encoding="utf-8")
            )
        except (OSError, UnicodeDecodeError) as exc:
            raise FileProcessingError(path, f"Could not read {path.name}: {exc}") from exc
        raise_if_cancelled(cancel_event)
        return await self._validator.validate_text(
            content, serialization, configuration.profile_urls, cancel_event=cancel_event
        )

    async def _process_resource(
        self,
        index: int,
        item: FhirResource | Mapping[str, Any],
        configuration: ValidationConfiguration,
        cancel_event: asyncio.Event | None,
    ) -> ValidationResult:
        started = time.perf_counter()
        try:
            resource = item if isinstance(item, FhirResource) else FhirResource.from_mapping(item)
            return await self._validator.validate(
                resource, configuration.profile_urls, cancel_event=cancel_event
            )
        except OperationCancelledError:
            raise
        except Exception as exc:
            self._logger.error(
                "validation.resource.failed", index=index, error_type=type(exc).__name__
            )
            return self._failure_result(
                f"resource-{index}",
                RESOURCE_PROCESSING_ERROR,
                f"Error processing resource: {exc}",
                "Resource",
                exc,
                started,
            )

    def _failure_result(
        self,
        name: str,
        code: str,
        description: str,
        element_path: str,
        exc: BaseException,
        started: float,
        **details: Any,
    ) -> ValidationResult:
        if exc.__cause__ is not None:
            details["cause"] = type(exc.__cause__).__name__
        duration = time.perf_counter() - started
        record_resource_validation(False, duration)
        return ValidationResult(
            resource_name=name,
            resource_type="Unknown",
            issues=(fatal_issue(code, description, element_path, exc, **details),),
            duration_seconds=duration,
        )

    def _finalize(
        self,
        report: BatchValidationReport,
        results: Sequence[ValidationResult],
        started: float,
        *,
        concurrency: int,
        mode: str,
    ) -> BatchValidationReport:
        elapsed = time.perf_counter() - started
        summary, metrics = aggregate(
            results,
            report.configuration,
            wall_clock_seconds=elapsed,
            concurrency=concurrency,
        )
        report.finalize(
            results,
            summary=summary,
            performance_metrics=metrics,
            completed_at=datetime.now(UTC),
            total_duration_seconds=elapsed,
        )
        record_batch_run(mode, "completed", elapsed)
        self._logger.info(
            "validation.batch.completed",
            mode=mode,
            total=summary.total_resources,
            passed=summary.passed_resources,
            failed=summary.failed_resources,
            overall_success=summary.overall_success,
            duration_seconds=round(elapsed, 3),
        )
        return report


__all__ = [
    "FILE_PROCESSING_ERROR",
    "RESOURCE_PROCESSING_ERROR",
    "BatchValidator",
    "ProgressObserver",
    "chunk_size_for",
]
