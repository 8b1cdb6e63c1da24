"""FHIR conformance checking using JSON Schemas.

This module provides the conformance engine used by the single-resource
validator. It checks a parsed resource against a curated base schema for its
resource type, against any requested profile schemas, and applies coding
checks to every ``coding`` entry in the document.

The module supports:
- JSON Schema validation for curated FHIR resource types
- A generic Resource schema for types without a curated definition
- Profile schemas keyed by canonical profile URL
- Coding checks for ``system`` and ``code`` values

Issues are reported in the native FHIR OperationOutcome vocabulary
(``fatal``/``error``/``warning``/``information`` severities and issue-type
codes); translating them into report issues is the validator's job.

Thread Safety:
    Thread-safe: Engine instances are stateless after construction, so one
    engine is shared by every worker thread of a batch.

Performance:
    Schema compilation happens once during initialization.
    Validation performance depends on resource complexity.

Example:
    >>> engine = JsonSchemaConformanceEngine()
    >>> resource = FhirResource.from_mapping({"resourceType": "Patient", "id": "p1"})
    >>> engine.evaluate(resource, [])
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================
from collections.abc import Iterable, Iterator, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as SchemaViolation

from .parser import FhirResource

# ==============================================================================
# TYPE DEFINITIONS
# ==============================================================================


@dataclass(frozen=True, slots=True)
class EngineIssue:
    """Native issue reported by a conformance engine.

    Attributes:
        severity: OperationOutcome severity (``fatal``, ``error``, ``warning``,
            ``information``).
        code: OperationOutcome issue-type code.
        diagnostics: Human readable explanation.
        location: Element paths the issue applies to.
        expression: FHIRPath expressions the issue applies to.
        profile: Profile URL that produced the issue, if any.
    """

    severity: str
    code: str
    diagnostics: str
    location: tuple[str, ...] = ()
    expression: tuple[str, ...] = ()
    profile: str | None = None


class ConformanceEngine(Protocol):
    """Checks a parsed resource and returns native issues."""

    def evaluate(
        self, resource: FhirResource, profile_urls: Sequence[str]
    ) -> list[EngineIssue]: ...


# ==============================================================================
# DATA MODELS
# ==============================================================================

@dataclass
class _CompiledSchema:
    """Internal data model for compiled schema information.

    Attributes:
        validator: Compiled JSON Schema validator.
        name: Resource type or profile URL the schema belongs to.
        resource_type: Resource type the schema constrains, if restricted.
    """

    validator: Draft202012Validator
    name: str
    resource_type: str | None = None


# FHIR JSON Schema definitions for resource validation
_ID_PATTERN = r"^[A-Za-z0-9\-\.]{1,64}$"

_CODING_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "system": {"type": "string"},
        "version": {"type": "string"},
        "code": {"type": "string"},
        "display": {"type": "string"},
    },
}

_CODEABLE_CONCEPT_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "coding": {
            "type": "array",
            "minItems": 1,
            "items": _CODING_SCHEMA,
        },
        "text": {"type": "string"},
    },
}

_REFERENCE_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "reference": {"type": "string"},
        "display": {"type": "string"},
    },
}

_CHARACTERISTIC_SCHEMA: dict[str, object] = {
    "type": "object",
    "required": ["code"],
    "properties": {
        "code": _CODEABLE_CONCEPT_SCHEMA,
        "valueCodeableConcept": _CODEABLE_CONCEPT_SCHEMA,
    },
}

_BASE_PROPERTIES: dict[str, object] = {
    "resourceType": {"type": "string"},
    "id": {"type": "string", "pattern": _ID_PATTERN},
    "meta": {
        "type": "object",
        "properties": {
            "versionId": {"type": "string"},
            "lastUpdated": {"type": "string"},
            "profile": {"type": "array", "items": {"type": "string"}},
        },
    },
    "text": {
        "type": "object",
        "required": ["status", "div"],
        "properties": {"status": {"type": "string"}, "div": {"type": "string"}},
    },
    "language": {"type": "string"},
}

_DEFINITIONS: dict[str, object] = {
    "Characteristic": _CHARACTERISTIC_SCHEMA,
    "CodeableConcept": _CODEABLE_CONCEPT_SCHEMA,
    "Coding": _CODING_SCHEMA,
    "Reference": _REFERENCE_SCHEMA,
}


def _resource_schema(
    resource_type: str | None,
    *,
    required: Sequence[str] = (),
    properties: Mapping[str, object] | None = None,
) -> dict[str, object]:
    schema_properties: dict[str, object] = dict(_BASE_PROPERTIES)
    if resource_type is not None:
        schema_properties["resourceType"] = {"const": resource_type}
    schema_properties.update(properties or {})
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "required": ["resourceType", *required],
        "properties": schema_properties,
        "definitions": _DEFINITIONS,
    }


BASE_RESOURCE_SCHEMA = _resource_schema(None)

FHIR_SCHEMAS: dict[str, dict[str, object]] = {
    "Patient": _resource_schema(
        "Patient",
        properties={
            "active": {"type": "boolean"},
            "identifier": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "system": {"type": "string"},
                        "value": {"type": "string"},
                    },
                },
            },
            "name": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "family": {"type": "string"},
                        "given": {"type": "array", "items": {"type": "string"}},
                        "text": {"type": "string"},
                    },
                },
            },
            "gender": {"enum": ["male", "female", "other", "unknown"]},
            "birthDate": {
                "type": "string",
                "pattern": r"^\d{4}(-\d{2}(-\d{2})?)?$",
            },
        },
    ),
    "Observation": _resource_schema(
        "Observation",
        required=["status", "code"],
        properties={
            "status": {
                "enum": [
                    "registered",
                    "preliminary",
                    "final",
                    "amended",
                    "corrected",
                    "cancelled",
                    "entered-in-error",
                    "unknown",
                ]
            },
            "category": {
                "type": "array",
                "items": {"$ref": "#/definitions/CodeableConcept"},
            },
            "code": {"$ref": "#/definitions/CodeableConcept"},
            "subject": {"$ref": "#/definitions/Reference"},
            "effectiveDateTime": {"type": "string"},
            "valueQuantity": {
                "type": "object",
                "properties": {
                    "value": {"type": "number"},
                    "unit": {"type": "string"},
                    "system": {"type": "string"},
                    "code": {"type": "string"},
                },
            },
            "valueString": {"type": "string"},
            "valueCodeableConcept": {"$ref": "#/definitions/CodeableConcept"},
        },
    ),
    "Evidence": _resource_schema(
        "Evidence",
        required=["status", "description", "outcome"],
        properties={
            "status": {"type": "string"},
            "description": {"type": "string"},
            "outcome": {
                "type": "object",
                "required": ["reference"],
                "properties": {"reference": {"type": "string"}},
            },
            "characteristic": {
                "type": "array",
                "items": {"$ref": "#/definitions/Characteristic"},
            },
        },
    ),
    "ResearchStudy": _resource_schema(
        "ResearchStudy",
        required=["status", "title", "identifier"],
        properties={
            "status": {"type": "string"},
            "title": {"type": "string"},
            "identifier": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "required": ["system", "value"],
                    "properties": {
                        "system": {"type": "string"},
                        "value": {"type": "string"},
                    },
                },
            },
            "phase": {"$ref": "#/definitions/CodeableConcept"},
            "category": {
                "type": "array",
                "items": {"$ref": "#/definitions/CodeableConcept"},
            },
        },
    ),
    "MedicationStatement": _resource_schema(
        "MedicationStatement",
        required=["status", "medication", "subject"],
        properties={
            "status": {"type": "string"},
            "medication": {
                "oneOf": [
                    {"$ref": "#/definitions/CodeableConcept"},
                    {
                        "type": "object",
                        "required": ["reference"],
                        "properties": {"reference": {"type": "string"}},
                    },
                ]
            },
            "subject": {
                "type": "object",
                "required": ["reference"],
                "properties": {"reference": {"type": "string"}},
            },
            "dosage": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "text": {"type": "string"},
                        "doseAndRate": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "doseQuantity": {
                                        "type": "object",
                                        "required": ["value", "unit"],
                                        "properties": {
                                            "value": {"type": "number"},
                                            "unit": {"type": "string"},
                                        },
                                    }
                                },
                            },
                        },
                    },
                },
            },
        },
    ),
}

US_CORE_PATIENT = "http://hl7.org/fhir/us/core/StructureDefinition/us-core-patient"
VITAL_SIGNS_OBSERVATION = "http://hl7.org/fhir/StructureDefinition/vitalsigns"

# Profile schemas add constraints on top of the base schema for a type.
PROFILE_SCHEMAS: dict[str, dict[str, object]] = {
    US_CORE_PATIENT: {
        "resourceType": "Patient",
        "schema": {
            "type": "object",
            "required": ["identifier", "name", "gender"],
            "properties": {
                "identifier": {
                    "type": "array",
                    "minItems": 1,
                    "items": {"type": "object", "required": ["system", "value"]},
                },
                "name": {"type": "array", "minItems": 1},
            },
        },
    },
    VITAL_SIGNS_OBSERVATION: {
        "resourceType": "Observation",
        "schema": {
            "type": "object",
            "required": ["category", "subject", "effectiveDateTime"],
            "properties": {
                "category": {"type": "array", "minItems": 1},
                "subject": {"type": "object", "required": ["reference"]},
            },
        },
    },
}

_VALIDATOR_CODES: dict[str, str] = {
    "required": "required",
    "minItems": "required",
    "const": "value",
    "enum": "code-invalid",
    "pattern": "value",
    "type": "structure",
    "oneOf": "structure",
}


# ==============================================================================
# ENGINE IMPLEMENTATION
# ==============================================================================


class JsonSchemaConformanceEngine:
    """Check FHIR resources against curated schemas and profiles.

    Resource types without a curated schema are checked against the generic
    Resource schema and receive an informational issue saying so.
    """

    def __init__(
        self,
        *,
        schemas: Mapping[str, Mapping[str, object]] | None = None,
        profiles: Mapping[str, Mapping[str, object]] | None = None,
    ) -> None:
        """Initialize engine with base and profile schemas.

        Args:
            schemas: Optional custom base schemas keyed by resource type.
            profiles: Optional profile definitions keyed by canonical URL. Each
                value holds a ``schema`` and an optional ``resourceType``.
        """
        source = schemas or FHIR_SCHEMAS
        self._validators: MutableMapping[str, _CompiledSchema] = {}
        for resource_type, schema in source.items():
            self._validators[resource_type] = _CompiledSchema(
                validator=Draft202012Validator(schema),
                name=resource_type,
                resource_type=resource_type,
            )
        self._fallback = _CompiledSchema(
            validator=Draft202012Validator(BASE_RESOURCE_SCHEMA), name="Resource"
        )
        self._profiles: MutableMapping[str, _CompiledSchema] = {}
        for url, definition in (PROFILE_SCHEMAS if profiles is None else profiles).items():
            resource_type = definition.get("resourceType")
            self._profiles[url] = _CompiledSchema(
                validator=Draft202012Validator(definition["schema"]),
                name=url,
                resource_type=str(resource_type) if resource_type else None,
            )

    @property
    def known_profiles(self) -> list[str]:
        return sorted(self._profiles)

    def evaluate(
        self, resource: FhirResource, profile_urls: Sequence[str]
    ) -> list[EngineIssue]:
        """Check a resource against its schema and the requested profiles."""
        content = resource.content
        issues: list[EngineIssue] = []
        compiled = self._validators.get(resource.resource_type)
        if compiled is None:
            compiled = self._fallback
            issues.append(
                EngineIssue(
                    severity="information",
                    code="informational",
                    diagnostics=(
                        f"No curated structure definition for '{resource.resource_type}'; "
                        "only base Resource rules were checked"
                    ),
                    location=(resource.resource_type,),
                )
            )
        issues.extend(self._validate_schema(compiled, resource))
        for url in profile_urls:
            issues.extend(self._validate_profile(url, resource))
        issues.extend(self._validate_terminology(resource.resource_type, content))
        return issues

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _validate_schema(
        self,
        compiled: _CompiledSchema,
        resource: FhirResource,
        *,
        profile: str | None = None,
    ) -> list[EngineIssue]:
        errors: list[EngineIssue] = []
        violations = sorted(
            compiled.validator.iter_errors(resource.content),
            key=lambda error: [str(part) for part in error.absolute_path],
        )
        for error in violations:
            path = _fhir_path(resource.resource_type, error)
            errors.append(
                EngineIssue(
                    severity="error",
                    code=_VALIDATOR_CODES.get(str(error.validator), "structure"),
                    diagnostics=f"{path}: {error.message}",
                    location=(path,),
                    expression=(path,),
                    profile=profile,
                )
            )
        return errors

    def _validate_profile(self, url: str, resource: FhirResource) -> list[EngineIssue]:
        compiled = self._profiles.get(url)
        if compiled is None:
            return [
                EngineIssue(
                    severity="warning",
                    code="not-found",
                    diagnostics=f"Profile '{url}' could not be resolved; it was not checked",
                    location=(resource.resource_type,),
                    profile=url,
                )
            ]
        if compiled.resource_type and compiled.resource_type != resource.resource_type:
            return [
                EngineIssue(
                    severity="error",
                    code="invalid",
                    diagnostics=(
                        f"Profile '{url}' constrains {compiled.resource_type}, "
                        f"not {resource.resource_type}"
                    ),
                    location=(resource.resource_type,),
                    profile=url,
                )
            ]
        return self._validate_schema(compiled, resource, profile=url)

    def _validate_terminology(
        self, resource_type: str, resource: Mapping[str, object]
    ) -> list[EngineIssue]:
        errors: list[EngineIssue] = []
        for path, coding in self._iter_coding(resource_type, resource):
            system = coding.get("system")
            code = coding.get("code")
            if not system or not isinstance(system, str):
                errors.append(
                    EngineIssue(
                        severity="warning",
                        code="code-invalid",
                        diagnostics="Coding.system should be a non-empty string",
                        location=(f"{path}.system",),
                    )
                )
            if not code or not isinstance(code, str):
                errors.append(
                    EngineIssue(
                        severity="error",
                        code="code-invalid",
                        diagnostics="Coding.code must be a non-empty string",
                        location=(f"{path}.code",),
                    )
                )
        return errors

    def _iter_coding(
        self, resource_type: str, resource: Mapping[str, object]
    ) -> Iterator[tuple[str, Mapping[str, object]]]:
        stack: list[tuple[str, object]] = [(resource_type, resource)]
        while stack:
            path, current = stack.pop()
            if isinstance(current, Mapping):
                coding = current.get("coding")
                if isinstance(coding, Sequence) and not isinstance(coding, (str, bytes)):
                    for index, entry in enumerate(coding):
                        if isinstance(entry, Mapping):
                            yield f"{path}.coding[{index}]", entry
                for key, value in current.items():
                    if key != "coding":
                        stack.append((f"{path}.{key}", value))
            elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
                stack.extend((f"{path}[{index}]", item) for index, item in enumerate(current))


# ==============================================================================
# HELPER FUNCTIONS
# ==============================================================================


def _fhir_path(resource_type: str, error: SchemaViolation) -> str:
    return resource_type + "".join(_path_parts(error.absolute_path))


def _path_parts(parts: Iterable[object]) -> Iterator[str]:
    for part in parts:
        if isinstance(part, int):
            yield f"[{part}]"
        else:
            yield f".{part}"


# ==============================================================================
# EXPORTS
# ==============================================================================

__all__ = [
    "BASE_RESOURCE_SCHEMA",
    "FHIR_SCHEMAS",
    "PROFILE_SCHEMAS",
    "US_CORE_PATIENT",
    "VITAL_SIGNS_OBSERVATION",
    "ConformanceEngine",
    "EngineIssue",
    "JsonSchemaConformanceEngine",
]
