"""
Namespace-agnostic XML parsing for authority responses.

Responsibility:
    Turns a SOAP response into a plain nested dict with namespace prefixes
    stripped, so callers navigate ``Envelope.Body.nfeResultMsg...`` without
    caring which prefix or default namespace each jurisdiction uses.

Shape rules:
    - Leaf element without attributes -> its stripped text ('' if empty).
    - Element with children or attributes -> dict; attributes under
      ``@name``, mixed text under ``#text``.
    - A tag repeated under one parent -> list, in document order.  Use
      ``as_list`` wherever a single element and a list are both possible.

Failure modes:
    - ResponseParseError for empty or malformed XML.
"""

import re
import xml.etree.ElementTree as ET
from typing import Any

from fiscal_kernel.exceptions import ResponseParseError

# Receipt-number element match, tolerant of prefixes and surrounding blanks
PROTOCOL_ELEMENT = re.compile(r"<(?:\w+:)?nProt>\s*([0-9]+)\s*</(?:\w+:)?nProt>")


def _local_name(tag: str) -> str:
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    return tag.rsplit(":", 1)[-1]


def _element_to_value(element: ET.Element) -> Any:
    children = list(element)
    text = (element.text or "").strip()
    if not children and not element.attrib:
        return text

    node: dict[str, Any] = {}
    for key, value in element.attrib.items():
        node[f"@{_local_name(key)}"] = value
    for child in children:
        name = _local_name(child.tag)
        value = _element_to_value(child)
        if name in node:
            existing = node[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                node[name] = [existing, value]
        else:
            node[name] = value
    if text:
        node["#text"] = text
    return node


def parse_xml(text: str | bytes | None) -> dict[str, Any]:
    """Parse ``text`` into ``{root_name: value}``."""
    if text is None or not text.strip():
        raise ResponseParseError("Empty response body", raw_xml=None)
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raw = text.decode("utf-8", errors="replace") if isinstance(text, bytes) else text
        raise ResponseParseError(f"XML parse error: {exc}", raw_xml=raw) from exc
    return {_local_name(root.tag): _element_to_value(root)}


def as_list(value: Any) -> list[Any]:
    """Normalize single-vs-repeated element shapes to a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def first(value: Any) -> Any:
    items = as_list(value)
    return items[0] if items else None


def dig(tree: Any, *path: str) -> Any:
    """Follow ``path`` through nested dicts, taking the first of any list."""
    node = tree
    for key in path:
        node = first(node)
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def text_of(value: Any) -> str | None:
    """Text content of a parsed node; None when absent or blank."""
    value = first(value)
    if isinstance(value, dict):
        value = value.get("#text")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def soap_body(tree: dict[str, Any]) -> dict[str, Any] | None:
    body = dig(tree, "Envelope", "Body")
    return body if isinstance(body, dict) else None


def soap_fault_reason(tree: dict[str, Any]) -> str | None:
    """Reason text of a SOAP 1.1/1.2 Fault, or None when there is no fault."""
    body = soap_body(tree)
    if body is None or "Fault" not in body:
        return None
    fault = first(body["Fault"])
    if not isinstance(fault, dict):
        return text_of(fault) or "Unknown SOAP Fault"
    reason = (
        text_of(dig(fault, "Reason", "Text"))
        or text_of(fault.get("Reason"))
        or text_of(fault.get("faultstring"))
    )
    return reason or "Unknown SOAP Fault"


def find_protocol_number(raw_xml: str | None) -> str | None:
    """Structural text match for the first receipt-number element."""
    if not raw_xml:
        return None
    match = PROTOCOL_ELEMENT.search(raw_xml)
    return match.group(1) if match else None
