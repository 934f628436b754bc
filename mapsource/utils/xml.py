"""Namespace-agnostic ElementTree helpers.

Capabilities documents use several namespace prefixes (``wms``, ``ows``,
``ows11``, none at all for WMS 1.1.1). Matching on local names keeps the
parsers independent of them.
"""

from __future__ import annotations

from collections.abc import Iterator
from xml.etree import ElementTree as ET

XLINK_HREF = "{http://www.w3.org/1999/xlink}href"


def local_name(tag: str) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].split(":")[-1]


def children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yield direct children with the given local name."""
    for child in element:
        if local_name(child.tag) == name:
            yield child


def child(element: ET.Element | None, name: str) -> ET.Element | None:
    if element is None:
        return None
    return next(children(element, name), None)


def find_path(element: ET.Element | None, *names: str) -> ET.Element | None:
    """Follow a chain of direct-child local names."""
    current = element
    for name in names:
        current = child(current, name)
        if current is None:
            return None
    return current


def descendants(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for node in element.iter():
        if local_name(node.tag) == name:
            yield node


def text(element: ET.Element | None) -> str | None:
    """Stripped text of an element, or None when missing or blank."""
    if element is None or element.text is None:
        return None
    value = element.text.strip()
    return value or None


def child_text(element: ET.Element | None, name: str) -> str | None:
    return text(child(element, name))


def children_text(element: ET.Element | None, name: str) -> list[str]:
    if element is None:
        return []
    return [value for node in children(element, name) if (value := text(node))]


def attr(element: ET.Element | None, name: str) -> str | None:
    """Attribute value by local name, ignoring namespace prefixes."""
    if element is None:
        return None
    for key, value in element.attrib.items():
        if local_name(key) == name:
            return value
    return None


def href(element: ET.Element | None) -> str | None:
    if element is None:
        return None
    return element.get(XLINK_HREF) or attr(element, "href")


def float_pair(value: str | None) -> tuple[float, float] | None:
    if not value:
        return None
    parts = value.split()
    if len(parts) < 2:
        return None
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        return None


def to_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def to_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None
