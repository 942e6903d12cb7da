"""
amtsbote.xmlutil
~~~~~~~~~~~~~~~~
Small ElementTree helpers shared by the SOAP transport and the codecs.

Documents are *built* with literal prefixed tag names (``cbc:ID``) and
explicit ``xmlns:*`` attributes, so the output carries exactly the
prefixes the receiving schema expects. Documents are *read* by local
name, which keeps decoders indifferent to whichever prefixes the other
side chose.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterator

from .exceptions import CodecError
from .money import parse_major


XML_DECLARATION = b'<?xml version="1.0" encoding="UTF-8"?>\n'


def sub(parent: ET.Element, tag: str, text: object = None, **attrs: str) -> ET.Element:
    """Append a child element, with optional text and attributes."""
    el = ET.SubElement(parent, tag, {k: v for k, v in attrs.items() if v is not None})
    if text is not None:
        el.text = str(text)
    return el


def sub_if(parent: ET.Element, tag: str, text: object) -> ET.Element | None:
    """Append a child only when *text* is non-empty."""
    if text in (None, ""):
        return None
    return sub(parent, tag, text)


def to_bytes(root: ET.Element, *, indent: bool = True) -> bytes:
    if indent:
        ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="utf-8", xml_declaration=False)


def parse(data: bytes | str, what: str = "XML") -> ET.Element:
    try:
        return ET.fromstring(data)
    except ET.ParseError as exc:
        raise CodecError(f"failed to parse {what}", cause=exc) from exc


# ---------------------------------------------------------------------------
# Namespace-agnostic navigation
# ---------------------------------------------------------------------------

def local(tag: str) -> str:
    """'{urn:x}ID' → 'ID', 'cbc:ID' → 'ID'"""
    if tag.startswith("{"):
        tag = tag.rsplit("}", 1)[1]
    return tag.rsplit(":", 1)[-1]


def children(el: ET.Element | None, name: str) -> Iterator[ET.Element]:
    if el is None:
        return iter(())
    return (c for c in el if local(c.tag) == name)


def child(el: ET.Element | None, name: str) -> ET.Element | None:
    return next(children(el, name), None)


def find(el: ET.Element | None, path: str) -> ET.Element | None:
    """Follow a ``A/B/C`` path of local names."""
    for part in path.split("/"):
        el = child(el, part)
        if el is None:
            return None
    return el


def text(el: ET.Element | None, path: str = "", default: str = "") -> str:
    node = find(el, path) if path else el
    if node is None or node.text is None:
        return default
    return node.text.strip()


def int_text(el: ET.Element | None, path: str, default: int = 0) -> int:
    raw = text(el, path)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise CodecError(f"{path}: expected an integer, got {raw!r}", cause=exc) from exc


def minor_text(el: ET.Element | None, path: str = "", default: int = 0) -> int:
    """Read a major-unit amount ('123.45') as minor units."""
    raw = text(el, path)
    if not raw:
        return default
    try:
        return parse_major(raw)
    except ValueError as exc:
        raise CodecError(f"{path}: {exc}", cause=exc) from exc


__all__ = [
    "XML_DECLARATION",
    "child",
    "children",
    "find",
    "int_text",
    "local",
    "minor_text",
    "parse",
    "sub",
    "sub_if",
    "text",
    "to_bytes",
]
