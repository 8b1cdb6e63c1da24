"""Configuration system for the conformance engine."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..models.validation import ValidationConfiguration

ReportFormat = Literal["html", "json", "csv", "console"]


class Environment(str, Enum):
    """Deployment environments supported by the engine."""

    DEV = "dev"
    CI = "ci"
    PROD = "prod"


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    level: str = Field(default="INFO", description="Log level for application output")
    scrub_fields: Sequence[str] = Field(
        default_factory=lambda: ["password", "token", "secret", "authorization"],
        description="Fields that should be redacted in logs",
    )


class ValidationSettings(BaseModel):
    """Thresholds and resilience knobs applied to every batch run."""

    minimum_pass_rate_threshold: float = Field(default=95.0, ge=0.0, le=100.0)
    maximum_fatal_errors: int = Field(default=0, ge=0)
    include_warnings: bool = True
    include_information: bool = False
    max_issues_per_resource: int = Field(default=100, ge=1)
    validation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for reading and validating one file",
    )
    retry_attempts: int = Field(
        default=3,
        ge=0,
        description="Retries for transient file I/O failures (excluding the first attempt)",
    )
    retry_initial_delay_seconds: float = Field(default=0.1, ge=0.0)
    max_chunk_size: int = Field(default=10, ge=1)
    max_concurrency: int | None = Field(
        default=None,
        ge=1,
        description="Bound for in-memory batches, defaults to the CPU count",
    )

    def to_configuration(
        self, profile_urls: Sequence[str] | None = None, **overrides: Any
    ) -> ValidationConfiguration:
        """Build the immutable per-run configuration from these settings."""
        values: dict[str, Any] = {
            "profile_urls": list(profile_urls or ()),
            "minimum_pass_rate_threshold": self.minimum_pass_rate_threshold,
            "maximum_fatal_errors": self.maximum_fatal_errors,
            "include_warnings": self.include_warnings,
            "include_information": self.include_information,
            "max_issues_per_resource": self.max_issues_per_resource,
            "validation_timeout_seconds": self.validation_timeout_seconds,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return ValidationConfiguration(**values)


class ReportingSettings(BaseModel):
    """Report output configuration."""

    output_directory: Path = Field(default=Path("validation-output"))
    formats: list[ReportFormat] = Field(default_factory=lambda: ["console"])
    ci_failed_resource_limit: int = Field(
        default=10,
        ge=1,
        description="Number of failing resources listed in CI details",
    )


class AppSettings(BaseSettings):
    """Top-level application settings."""

    environment: Environment = Environment.DEV
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    reporting: ReportingSettings = Field(default_factory=ReportingSettings)

    model_config = SettingsConfigDict(env_prefix="MC_", env_nested_delimiter="__")


ENVIRONMENT_DEFAULTS: Mapping[Environment, dict[str, Any]] = {
    Environment.DEV: {
        "logging": {"level": "INFO"},
    },
    Environment.CI: {
        "reporting": {"formats": ["console", "json"]},
    },
    Environment.PROD: {
        "logging": {"level": "WARNING"},
    },
}


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            target[key] = _deep_update(dict(current), value)
        else:
            target[key] = value
    return target


def load_settings(environment: str | None = None) -> AppSettings:
    """Load application settings with environment specific defaults applied.

    Environment defaults only fill values that were not set explicitly through
    ``MC_`` variables.
    """
    env_value = (environment or os.getenv("MC_ENV", "dev")).lower()
    try:
        env = Environment(env_value)
    except ValueError as err:
        raise RuntimeError(f"Invalid configuration: unknown environment {env_value!r}") from err
    defaults = ENVIRONMENT_DEFAULTS.get(env, {})
    try:
        base_settings = AppSettings()
    except ValidationError as err:
        raise RuntimeError(f"Invalid configuration: {err}") from err
    merged = _deep_update(base_settings.model_dump(), defaults)
    merged = _deep_update(merged, base_settings.model_dump(exclude_unset=True))
    merged["environment"] = env
    return AppSettings.model_validate(merged)


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Cached accessor used by production code."""
    return load_settings()


__all__ = [
    "AppSettings",
    "Environment",
    "LoggingSettings",
    "ReportFormat",
    "ReportingSettings",
    "ValidationSettings",
    "get_settings",
    "load_settings",
]
