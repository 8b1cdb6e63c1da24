"""Parse raw FHIR JSON and XML text into typed resource documents.

Both serializations are normalised into the JSON object model so the
conformance engine only ever sees one shape. XML conversion follows the FHIR
XML rules needed for structural checks: the root element name is the resource
type, ``value`` attributes carry primitives, repeating elements become
arrays, and nested resources inside ``contained`` or ``resource`` keep their
own ``resourceType``.
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Protocol

from ..utils.errors import ParseError

Serialization = Literal["json", "xml"]

FHIR_NAMESPACE = "http://hl7.org/fhir"
XHTML_NAMESPACE = "http://www.w3.org/1999/xhtml"

_SUFFIXES: dict[str, Serialization] = {".json": "json", ".xml": "xml"}

# Elements that are arrays in FHIR JSON even when only one occurrence exists.
_REPEATING_ELEMENTS = frozenset(
    {
        "address",
        "arm",
        "author",
        "basedOn",
        "category",
        "certainty",
        "characteristic",
        "coding",
        "communication",
        "component",
        "condition",
        "contact",
        "contained",
        "derivedFrom",
        "dosage",
        "doseAndRate",
        "enrollment",
        "entry",
        "extension",
        "focus",
        "generalPractitioner",
        "given",
        "hasMember",
        "identifier",
        "interpretation",
        "keyword",
        "line",
        "link",
        "modifierExtension",
        "name",
        "note",
        "objective",
        "partOf",
        "performer",
        "photo",
        "prefix",
        "profile",
        "qualification",
        "reasonCode",
        "referenceRange",
        "relatedArtifact",
        "security",
        "site",
        "statistic",
        "suffix",
        "tag",
        "telecom",
        "useContext",
    }
)

# Elements whose single child element is itself a resource.
_RESOURCE_CONTAINERS = frozenset({"contained", "resource", "outcome"})

_NUMERIC_PRIMITIVES = frozenset(
    {
        "valueDecimal",
        "valueInteger",
        "valuePositiveInt",
        "valueUnsignedInt",
        "multipleBirthInteger",
        "numberOfInstances",
        "numberOfSeries",
        "rank",
        "sequence",
        "total",
    }
)
_QUANTITY_PARENTS = frozenset({"low", "high", "numerator", "denominator", "quantity"})


@dataclass(frozen=True, slots=True)
class FhirResource:
    """A parsed resource document in the FHIR JSON object model."""

    resource_type: str
    id: str | None = None
    content: Mapping[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.id or "Unknown"

    @classmethod
    def from_mapping(
        cls, payload: Mapping[str, Any], *, serialization: str = "json"
    ) -> FhirResource:
        """Wrap an already materialised JSON object."""
        resource_type = payload.get("resourceType")
        if not isinstance(resource_type, str) or not resource_type.strip():
            raise ParseError(
                "Resource is missing a 'resourceType' string", serialization=serialization
            )
        resource_id = payload.get("id")
        return cls(
            resource_type=resource_type,
            id=str(resource_id) if resource_id not in (None, "") else None,
            content=payload,
        )


class ResourceParser(Protocol):
    """Converts raw text in a recognised serialization into a resource."""

    def parse(self, text: str, serialization: Serialization) -> FhirResource: ...


def serialization_for_path(path: str | Path) -> Serialization | None:
    """Return the serialization implied by a file suffix, if recognised."""
    return _SUFFIXES.get(Path(path).suffix.lower())


class FhirResourceParser:
    """Default parser for FHIR JSON and XML text."""

    def parse(self, text: str, serialization: Serialization) -> FhirResource:
        if serialization == "json":
            return self.parse_json(text)
        if serialization == "xml":
            return self.parse_xml(text)
        raise ParseError(f"Unsupported serialization: {serialization}")

    def parse_json(self, text: str) -> FhirResource:
        if not text or not text.strip():
            raise ParseError("Resource JSON cannot be empty", serialization="json")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON: {exc}", serialization="json") from exc
        if not isinstance(payload, dict):
            raise ParseError("Resource JSON must be an object", serialization="json")
        return FhirResource.from_mapping(payload, serialization="json")

    def parse_xml(self, text: str) -> FhirResource:
        if not text or not text.strip():
            raise ParseError("Resource XML cannot be empty", serialization="xml")
        try:
            root = ET.fromstring(text)
        except ET.ParseError as exc:
            raise ParseError(f"Invalid XML: {exc}", serialization="xml") from exc
        namespace = _namespace(root.tag)
        if namespace not in (None, FHIR_NAMESPACE):
            raise ParseError(
                f"Root element is not in the FHIR namespace: {namespace}", serialization="xml"
            )
        payload = _resource_to_dict(root)
        return FhirResource.from_mapping(payload, serialization="xml")


# ------------------------------------------------------------------------------
# XML helpers
# ------------------------------------------------------------------------------


def _namespace(tag: str) -> str | None:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _resource_to_dict(element: ET.Element) -> dict[str, Any]:
    payload: dict[str, Any] = {"resourceType": _local_name(element.tag)}
    payload.update(_children_to_dict(element))
    return payload


def _children_to_dict(element: ET.Element) -> dict[str, Any]:
    parent = _local_name(element.tag)
    payload: dict[str, Any] = {}
    for key in ("id", "url"):
        if key in element.attrib:
            payload[key] = element.attrib[key]
    for child in element:
        name = _local_name(child.tag)
        value, extras = _element_value(child, parent)
        _append(payload, name, value)
        if extras is not None:
            _append(payload, f"_{name}", extras)
    return payload


def _element_value(element: ET.Element, parent: str) -> tuple[Any, dict[str, Any] | None]:
    name = _local_name(element.tag)
    if _namespace(element.tag) == XHTML_NAMESPACE or name == "div":
        return ET.tostring(element, encoding="unicode"), None
    if name in _RESOURCE_CONTAINERS and len(element) == 1 and "value" not in element.attrib:
        (inner,) = list(element)
        if _local_name(inner.tag)[:1].isupper():
            return _resource_to_dict(inner), None
    if "value" in element.attrib:
        primitive = _coerce_primitive(name, parent, element.attrib["value"])
        extras = _children_to_dict(element) if len(element) or "id" in element.attrib else None
        return primitive, extras or None
    return _children_to_dict(element), None


def _coerce_primitive(name: str, parent: str, raw: str) -> Any:
    if raw in ("true", "false"):
        return raw == "true"
    numeric = name in _NUMERIC_PRIMITIVES or (
        name == "value" and (parent.endswith("Quantity") or parent in _QUANTITY_PARENTS)
    )
    if numeric:
        try:
            return int(raw)
        except ValueError:
            try:
                return float(raw)
            except ValueError:
                return raw
    return raw


def _append(payload: dict[str, Any], name: str, value: Any) -> None:
    if name in _REPEATING_ELEMENTS or name.lstrip("_") in _REPEATING_ELEMENTS:
        payload.setdefault(name, []).append(value)
        return
    if name in payload:
        existing = payload[name]
        if isinstance(existing, list):
            existing.append(value)
        else:
            payload[name] = [existing, value]
        return
    payload[name] = value


__all__ = [
    "FHIR_NAMESPACE",
    "FhirResource",
    "FhirResourceParser",
    "ResourceParser",
    "Serialization",
    "serialization_for_path",
]
