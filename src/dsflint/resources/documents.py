"""Parsing of FHIR and BPMN documents into element trees.

XML documents are parsed with defusedxml. FHIR JSON documents are translated
into the same element shape FHIR XML uses (primitives as ``<name value="..."/>``,
repeating elements as repeated siblings, ``id`` and ``url`` of nested elements
as attributes) so every downstream check works on one format.
"""

import json
import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring as defused_fromstring

logger = logging.getLogger(__name__)

FHIR_NAMESPACE = "http://hl7.org/fhir"

# Keys of nested JSON objects that FHIR XML carries as attributes
ATTRIBUTE_KEYS = frozenset({"id", "url"})


class UnparsableDocumentError(ValueError):
    """A document could not be read or parsed."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Unable to parse {source}: {reason}")
        self.source = source
        self.reason = reason


def parse_document(path: Path) -> ET.Element:
    """Parse an XML or JSON document from disk.

    Raises:
        UnparsableDocumentError: If the file cannot be read or parsed
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise UnparsableDocumentError(str(path), str(e))
    return parse_bytes(data, str(path))


def parse_bytes(data: bytes, source_name: str) -> ET.Element:
    """Parse document content, choosing JSON or XML by name and content."""
    if _looks_like_json(data, source_name):
        try:
            payload = json.loads(data.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise UnparsableDocumentError(source_name, f"invalid JSON: {e}")
        if not isinstance(payload, dict) or not payload.get("resourceType"):
            raise UnparsableDocumentError(source_name, "JSON document has no resourceType")
        return json_to_element(payload)

    try:
        return defused_fromstring(data)
    except (ET.ParseError, DefusedXmlException) as e:
        raise UnparsableDocumentError(source_name, f"invalid XML: {e}")


def _looks_like_json(data: bytes, source_name: str) -> bool:
    if source_name.lower().endswith(".json"):
        return True
    if source_name.lower().endswith((".xml", ".bpmn")):
        return False
    return data.lstrip(b"\xef\xbb\xbf \t\r\n")[:1] == b"{"


def json_to_element(resource: dict[str, Any]) -> ET.Element:
    """Translate a FHIR JSON resource into its FHIR XML element shape."""
    root = ET.Element(_tag(resource["resourceType"]))
    _append_members(root, resource, nested=False)
    return root


def _append_members(parent: ET.Element, obj: dict[str, Any], nested: bool) -> None:
    for key, value in obj.items():
        if key == "resourceType" or key.startswith("_") or value is None:
            continue
        if nested and key in ATTRIBUTE_KEYS and not isinstance(value, (dict, list)):
            parent.set(key, _primitive_text(value))
            continue
        values = value if isinstance(value, list) else [value]
        for item in values:
            if item is not None:
                _append_value(parent, key, item)


def _append_value(parent: ET.Element, key: str, value: Any) -> None:
    element = ET.SubElement(parent, _tag(key))
    if isinstance(value, dict):
        if "resourceType" in value:
            # Contained/embedded resource: <key><Type>...</Type></key>
            element.append(json_to_element(value))
        else:
            _append_members(element, value, nested=True)
    elif key == "div":
        element.text = str(value)
    else:
        element.set("value", _primitive_text(value))


def _primitive_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _tag(name: str) -> str:
    return f"{{{FHIR_NAMESPACE}}}{name}"


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` part of an element tag."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def resource_type(root: ET.Element) -> str:
    return local_name(root.tag)


def children(element: ET.Element, name: str) -> list[ET.Element]:
    """Direct children with the given local name, in document order."""
    return [child for child in element if local_name(child.tag) == name]


def child(element: ET.Element, name: str) -> ET.Element | None:
    for candidate in element:
        if local_name(candidate.tag) == name:
            return candidate
    return None


def find_all(element: ET.Element, path: str) -> list[ET.Element]:
    """All elements reached by a dotted path of local names, e.g. ``type.coding.code``."""
    current = [element]
    for part in path.split("."):
        if not part:
            continue
        current = [found for node in current for found in children(node, part)]
    return current


def values_of(element: ET.Element, path: str) -> list[str]:
    """``value`` attributes of every element reached by ``path``."""
    return [node.get("value") for node in find_all(element, path) if node.get("value") is not None]


def value_of(element: ET.Element, path: str) -> str | None:
    """First ``value`` attribute reached by ``path``, or None."""
    values = values_of(element, path)
    return values[0] if values else None


def iter_descendants(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Every descendant (excluding ``element``) with the given local name."""
    for node in element.iter():
        if node is not element and local_name(node.tag) == name:
            yield node
