"""Conformance validation for FHIR resources."""

from .aggregation import aggregate, compute_performance_metrics, summarize
from .batch import BatchValidator, ProgressObserver, chunk_size_for
from .engine import (
    US_CORE_PATIENT,
    VITAL_SIGNS_OBSERVATION,
    ConformanceEngine,
    EngineIssue,
    JsonSchemaConformanceEngine,
)
from .parser import FhirResource, FhirResourceParser, ResourceParser, serialization_for_path
from .resilience import RetryPolicy, TenacityRetryPolicy, is_transient_io_error
from .validator import ResourceValidator, map_severity

__all__ = [
    "US_CORE_PATIENT",
    "VITAL_SIGNS_OBSERVATION",
    "BatchValidator",
    "ConformanceEngine",
    "EngineIssue",
    "FhirResource",
    "FhirResourceParser",
    "JsonSchemaConformanceEngine",
    "ProgressObserver",
    "ResourceParser",
    "ResourceValidator",
    "RetryPolicy",
    "TenacityRetryPolicy",
    "aggregate",
    "chunk_size_for",
    "compute_performance_metrics",
    "is_transient_io_error",
    "map_severity",
    "serialization_for_path",
    "summarize",
]
