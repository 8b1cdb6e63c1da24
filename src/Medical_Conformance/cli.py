"""Command line entry point for FHIR conformance validation."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

import structlog

from .config.settings import AppSettings, get_settings
from .models.validation import BatchValidationProgress, BatchValidationReport
from .reporting.generator import ValidationReportGenerator
from .utils.errors import OperationCancelledError, PreconditionError, ReportGenerationError
from .utils.logging import configure_logging
from .validation.batch import BatchValidator
from .validation.resilience import TenacityRetryPolicy
from .validation.validator import ResourceValidator

logger = structlog.get_logger(__name__)

REPORT_FORMATS = ("html", "json", "csv", "console")
EXIT_INTERRUPTED = 130


def _build_batch_validator(settings: AppSettings, args: argparse.Namespace) -> BatchValidator:
    validation = settings.validation
    configuration = validation.to_configuration(
        args.profiles,
        minimum_pass_rate_threshold=getattr(args, "pass_threshold", None),
        maximum_fatal_errors=getattr(args, "max_fatal", None),
    )
    return BatchValidator(
        ResourceValidator(configuration=configuration),
        configuration=configuration,
        retry_policy=TenacityRetryPolicy(
            max_retries=validation.retry_attempts,
            initial_delay_seconds=validation.retry_initial_delay_seconds,
        ),
        max_concurrency=validation.max_concurrency,
        max_chunk_size=validation.max_chunk_size,
    )


def _progress_logger(verbose: bool) -> Any:
    if not verbose:
        return None

    def _log(progress: BatchValidationProgress) -> None:
        logger.info(
            "validation.progress",
            current=progress.current_resource,
            total=progress.total_resources,
            percentage=round(progress.progress_percentage, 1),
            resource=progress.current_resource_name,
        )

    return _log


async def _publish(
    report: BatchValidationReport, settings: AppSettings, args: argparse.Namespace
) -> int:
    generator = ValidationReportGenerator(
        ci_failed_resource_limit=settings.reporting.ci_failed_resource_limit
    )
    formats = args.formats or list(settings.reporting.formats)
    output = Path(args.output) if args.output else settings.reporting.output_directory
    try:
        artifacts = await generator.generate_reports(report, output, formats)
    except ReportGenerationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    if "console" in formats:
        print(generator.render_console_report(report, verbose=args.verbose), end="")
    for artifact in artifacts:
        print(f"Report written: {artifact}")
    ci_summary = generator.build_ci_summary(report, artifacts)
    print(ci_summary.summary)
    logger.info("validation.ci.summary", exit_code=ci_summary.exit_code, summary=ci_summary.summary)
    return ci_summary.exit_code


async def _validate(args: argparse.Namespace, settings: AppSettings) -> int:
    batch = _build_batch_validator(settings, args)
    report = await batch.validate_file(args.resource, args.profiles)
    return await _publish(report, settings, args)


async def _validate_directory(args: argparse.Namespace, settings: AppSettings) -> int:
    batch = _build_batch_validator(settings, args)
    report = await batch.validate_directory(
        args.directory,
        args.pattern,
        args.profiles,
        progress=_progress_logger(args.verbose),
    )
    return await _publish(report, settings, args)


def cmd_validate(args: argparse.Namespace) -> int:
    return _run(_validate, args)


def cmd_validate_directory(args: argparse.Namespace) -> int:
    return _run(_validate_directory, args)


def _run(command: Any, args: argparse.Namespace) -> int:
    try:
        settings = get_settings()
    except RuntimeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    configure_logging(settings=settings.logging)
    try:
        return asyncio.run(command(args, settings))
    except PreconditionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, OperationCancelledError):
        print("Validation cancelled", file=sys.stderr)
        return EXIT_INTERRUPTED


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--profiles",
        nargs="+",
        default=None,
        metavar="URL",
        help="Profile URLs to validate against",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Output directory for report files (default: ./validation-output)",
    )
    parser.add_argument(
        "--formats",
        nargs="+",
        choices=REPORT_FORMATS,
        default=None,
        help="Report formats to generate (default: console)",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Include per-resource details and progress"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="medical-conformance",
        description="Batch conformance validation of FHIR resources",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="Validate a single FHIR resource file")
    validate.add_argument(
        "--resource", required=True, help="Path to the resource file (JSON or XML)"
    )
    _add_common_options(validate)
    validate.set_defaults(func=cmd_validate)

    directory = sub.add_parser(
        "validate-directory", help="Validate all FHIR resources under a directory"
    )
    directory.add_argument(
        "--directory", required=True, help="Directory containing resource files"
    )
    directory.add_argument(
        "--pattern", default="*.*", help="File glob matched recursively (default: *.*)"
    )
    _add_common_options(directory)
    directory.add_argument(
        "--pass-threshold",
        dest="pass_threshold",
        type=float,
        default=None,
        help="Minimum pass rate percentage for success (default: 95.0)",
    )
    directory.add_argument(
        "--max-fatal",
        dest="max_fatal",
        type=int,
        default=None,
        help="Maximum fatal issues tolerated across the batch (default: 0)",
    )
    directory.set_defaults(func=cmd_validate_directory)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
