import asyncio
import json

import pytest

from Medical_Conformance.models import IssueSeverity, ValidationConfiguration
from Medical_Conformance.utils.errors import OperationCancelledError, ValidationEngineError
from Medical_Conformance.validation.engine import EngineIssue
from Medical_Conformance.validation.parser import FhirResource
from Medical_Conformance.validation.validator import (
    PARSE_ERROR,
    VALIDATION_ERROR,
    ResourceValidator,
    map_severity,
    translate_issue,
)


class _StaticEngine:
    def __init__(self, issues):
        self.issues = issues
        self.calls = []

    def evaluate(self, resource, profile_urls):
        self.calls.append((resource.resource_type, tuple(profile_urls)))
        return list(self.issues)


class _ExplodingEngine:
    def evaluate(self, resource, profile_urls):
        raise RuntimeError("engine exploded")


class _RefusingEngine:
    def evaluate(self, resource, profile_urls):
        raise ValidationEngineError("schema store unavailable", engine="terminology")


def _engine_issue(severity: str, code: str = "structure") -> EngineIssue:
    return EngineIssue(severity=severity, code=code, diagnostics=f"{severity} issue")


def test_map_severity_defaults_unknown_to_error():
    assert map_severity("fatal") is IssueSeverity.FATAL
    assert map_severity("Warning") is IssueSeverity.WARNING
    assert map_severity("surprising") is IssueSeverity.ERROR
    assert map_severity(None) is IssueSeverity.ERROR


def test_translate_issue_fills_defaults():
    issue = translate_issue(
        EngineIssue(severity="error", code="", diagnostics="", location=("Patient.name",))
    )
    assert issue.code == "UNKNOWN"
    assert issue.description == "No description available"
    assert issue.element_path == "Patient.name"


def test_validate_json_valid_resource(patient):
    async def _run():
        return await ResourceValidator().validate_json(json.dumps(patient))

    result = asyncio.run(_run())
    assert result.is_valid
    assert result.resource_name == "patient-1"
    assert result.resource_type == "Patient"
    assert result.issues == ()
    assert result.duration_seconds >= 0


def test_validate_json_parse_failure_is_single_fatal_issue():
    engine = _StaticEngine([])

    async def _run():
        return await ResourceValidator(engine=engine).validate_json("{not json")

    result = asyncio.run(_run())
    assert not result.is_valid
    assert result.resource_name == "Unknown"
    assert result.resource_type == "Unknown"
    assert len(result.issues) == 1
    issue = result.issues[0]
    assert issue.severity is IssueSeverity.FATAL
    assert issue.code == PARSE_ERROR
    assert issue.description.startswith("Failed to parse JSON resource:")
    assert engine.calls == []


def test_validate_xml_parse_failure():
    async def _run():
        return await ResourceValidator().validate_xml("<Patient>")

    result = asyncio.run(_run())
    assert result.issues[0].code == PARSE_ERROR
    assert result.issues[0].description.startswith("Failed to parse XML resource:")


def test_engine_failure_becomes_validation_error():
    resource = FhirResource.from_mapping({"resourceType": "Patient", "id": "p"})

    async def _run():
        return await ResourceValidator(engine=_ExplodingEngine()).validate(resource)

    result = asyncio.run(_run())
    assert [issue.code for issue in result.issues] == [VALIDATION_ERROR]
    assert result.issues[0].severity is IssueSeverity.FATAL
    assert "engine exploded" in result.issues[0].description
    assert result.issues[0].details["exception"] == "RuntimeError"
    assert result.issues[0].details["engine"] == "_ExplodingEngine"


def test_engine_raising_engine_error_keeps_its_engine_name():
    resource = FhirResource.from_mapping({"resourceType": "Patient", "id": "p"})

    async def _run():
        return await ResourceValidator(engine=_RefusingEngine()).validate(resource)

    result = asyncio.run(_run())
    (issue,) = result.issues
    assert issue.code == VALIDATION_ERROR
    assert issue.description == "Validation failed with exception: schema store unavailable"
    assert issue.details["exception"] == "ValidationEngineError"
    assert issue.details["engine"] == "terminology"
    assert not result.is_valid


def test_configuration_filters_warnings_and_information():
    engine = _StaticEngine(
        [_engine_issue("information"), _engine_issue("warning"), _engine_issue("error")]
    )
    resource = FhirResource.from_mapping({"resourceType": "Patient"})
    configuration = ValidationConfiguration(include_warnings=False, include_information=False)

    async def _run():
        validator = ResourceValidator(engine=engine, configuration=configuration)
        return await validator.validate(resource)

    result = asyncio.run(_run())
    assert [issue.severity for issue in result.issues] == [IssueSeverity.ERROR]


def test_issue_cap_keeps_most_severe_issues():
    engine = _StaticEngine(
        [_engine_issue("warning")] * 5 + [_engine_issue("fatal"), _engine_issue("error")]
    )
    resource = FhirResource.from_mapping({"resourceType": "Patient"})
    configuration = ValidationConfiguration(max_issues_per_resource=2)

    async def _run():
        validator = ResourceValidator(engine=engine, configuration=configuration)
        return await validator.validate(resource)

    result = asyncio.run(_run())
    assert [issue.severity for issue in result.issues] == [IssueSeverity.FATAL, IssueSeverity.ERROR]


def test_profiles_default_to_configuration():
    engine = _StaticEngine([])
    configuration = ValidationConfiguration(profile_urls=("http://example.org/p",))
    resource = FhirResource.from_mapping({"resourceType": "Patient"})

    async def _run():
        validator = ResourceValidator(engine=engine, configuration=configuration)
        first = await validator.validate(resource)
        await validator.validate(resource, ["http://example.org/q"])
        return first

    result = asyncio.run(_run())
    assert result.validated_profiles == ("http://example.org/p",)
    assert engine.calls == [
        ("Patient", ("http://example.org/p",)),
        ("Patient", ("http://example.org/q",)),
    ]


def test_cancelled_validation_raises():
    resource = FhirResource.from_mapping({"resourceType": "Patient"})

    async def _run():
        event = asyncio.Event()
        event.set()
        await ResourceValidator().validate(resource, cancel_event=event)

    with pytest.raises(OperationCancelledError):
        asyncio.run(_run())
