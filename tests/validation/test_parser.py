import json

import pytest

from Medical_Conformance.utils.errors import ParseError
from Medical_Conformance.validation.parser import (
    FhirResource,
    FhirResourceParser,
    serialization_for_path,
)

PATIENT_XML = """<?xml version="1.0" encoding="UTF-8"?>
<Patient xmlns="http://hl7.org/fhir">
  <id value="example"/>
  <text>
    <status value="generated"/>
    <div xmlns="http://www.w3.org/1999/xhtml">Jane Doe</div>
  </text>
  <active value="true"/>
  <identifier>
    <system value="urn:mrn"/>
    <value value="12345"/>
  </identifier>
  <name>
    <family value="Doe"/>
    <given value="Jane"/>
    <given value="Q"/>
  </name>
  <gender value="female"/>
  <birthDate value="1970-01-01"/>
</Patient>
"""

OBSERVATION_XML = """<Observation xmlns="http://hl7.org/fhir">
  <id value="bp"/>
  <status value="final"/>
  <code>
    <coding>
      <system value="http://loinc.org"/>
      <code value="8867-4"/>
    </coding>
  </code>
  <valueQuantity>
    <value value="72"/>
    <unit value="beats/minute"/>
  </valueQuantity>
</Observation>
"""


def test_parse_json_resource():
    parser = FhirResourceParser()
    resource = parser.parse(json.dumps({"resourceType": "Patient", "id": "p1"}), "json")
    assert resource.resource_type == "Patient"
    assert resource.id == "p1"
    assert resource.name == "p1"


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("", "cannot be empty"),
        ("{not json", "Invalid JSON"),
        ("[1, 2]", "must be an object"),
        ('{"id": "x"}', "resourceType"),
    ],
)
def test_parse_json_failures(text, message):
    with pytest.raises(ParseError, match=message) as exc:
        FhirResourceParser().parse_json(text)
    assert exc.value.serialization == "json"


def test_parse_xml_converts_to_json_model():
    resource = FhirResourceParser().parse(PATIENT_XML, "xml")
    content = resource.content
    assert resource.resource_type == "Patient"
    assert resource.id == "example"
    assert content["active"] is True
    assert content["identifier"] == [{"system": "urn:mrn", "value": "12345"}]
    assert content["name"] == [{"family": "Doe", "given": ["Jane", "Q"]}]
    assert content["gender"] == "female"
    assert content["text"]["status"] == "generated"
    assert "Jane Doe" in content["text"]["div"]


def test_parse_xml_coerces_quantity_values():
    content = FhirResourceParser().parse_xml(OBSERVATION_XML).content
    assert content["valueQuantity"] == {"value": 72, "unit": "beats/minute"}
    assert content["code"]["coding"] == [{"system": "http://loinc.org", "code": "8867-4"}]


def test_parse_xml_rejects_malformed_and_foreign_documents():
    parser = FhirResourceParser()
    with pytest.raises(ParseError, match="Invalid XML"):
        parser.parse_xml("<Patient><id value='x'></Patient>")
    with pytest.raises(ParseError, match="FHIR namespace"):
        parser.parse_xml('<Patient xmlns="urn:other"/>')


def test_from_mapping_without_id_uses_unknown_name():
    resource = FhirResource.from_mapping({"resourceType": "Patient"})
    assert resource.id is None
    assert resource.name == "Unknown"


def test_serialization_for_path():
    assert serialization_for_path("a/b/patient.JSON") == "json"
    assert serialization_for_path("obs.xml") == "xml"
    assert serialization_for_path("notes.txt") is None
