from Medical_Conformance.validation.engine import (
    US_CORE_PATIENT,
    VITAL_SIGNS_OBSERVATION,
    JsonSchemaConformanceEngine,
)
from Medical_Conformance.validation.parser import FhirResource


def _evidence_resource():
    return {
        "resourceType": "Evidence",
        "status": "active",
        "description": "Hypertension reduction evidence",
        "outcome": {"reference": "Observation/1"},
        "characteristic": [
            {
                "code": {
                    "coding": [
                        {"system": "http://loinc.org", "code": "1234-5", "display": "Systolic"}
                    ]
                }
            }
        ],
    }


def _evaluate(payload, profiles=()):
    engine = JsonSchemaConformanceEngine()
    return engine.evaluate(FhirResource.from_mapping(payload), list(profiles))


def test_valid_evidence_resource():
    assert _evaluate(_evidence_resource()) == []


def test_invalid_missing_required_field():
    resource = _evidence_resource()
    resource.pop("description")
    issues = _evaluate(resource)
    assert [issue.code for issue in issues] == ["required"]
    assert issues[0].severity == "error"
    assert "description" in issues[0].diagnostics


def test_missing_coding_system_is_a_warning():
    resource = _evidence_resource()
    resource["characteristic"][0]["code"]["coding"][0].pop("system")
    issues = _evaluate(resource)
    assert len(issues) == 1
    assert issues[0].severity == "warning"
    assert "Coding.system" in issues[0].diagnostics
    assert issues[0].location == ("Evidence.characteristic[0].code.coding[0].system",)


def test_missing_coding_code_is_an_error():
    resource = _evidence_resource()
    resource["characteristic"][0]["code"]["coding"][0].pop("code")
    issues = _evaluate(resource)
    assert [(issue.severity, issue.code) for issue in issues] == [("error", "code-invalid")]


def test_enum_violation_reports_fhir_path(patient):
    patient["gender"] = "martian"
    issues = _evaluate(patient)
    assert len(issues) == 1
    assert issues[0].code == "code-invalid"
    assert issues[0].location == ("Patient.gender",)


def test_us_core_profile_requires_identifier(patient):
    assert _evaluate(patient, [US_CORE_PATIENT]) == []
    patient.pop("identifier")
    issues = _evaluate(patient, [US_CORE_PATIENT])
    assert [issue.code for issue in issues] == ["required"]
    assert issues[0].profile == US_CORE_PATIENT


def test_profile_for_other_resource_type_is_an_error(patient):
    issues = _evaluate(patient, [VITAL_SIGNS_OBSERVATION])
    assert [(issue.severity, issue.code) for issue in issues] == [("error", "invalid")]


def test_unknown_profile_is_a_warning(patient):
    issues = _evaluate(patient, ["http://example.org/StructureDefinition/unknown"])
    assert [(issue.severity, issue.code) for issue in issues] == [("warning", "not-found")]


def test_unknown_resource_type_falls_back_to_base_rules():
    issues = _evaluate({"resourceType": "Basic", "id": "has spaces"})
    assert [issue.severity for issue in issues] == ["information", "error"]
    assert issues[1].location == ("Basic.id",)


def test_known_profiles_lists_builtin_profiles():
    assert JsonSchemaConformanceEngine().known_profiles == sorted(
        [US_CORE_PATIENT, VITAL_SIGNS_OBSERVATION]
    )
