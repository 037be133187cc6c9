"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

xml_utils.py - XML parsing helpers shared by detectors and adapters

SECURITY: All parsing goes through defusedxml to block XXE and entity
expansion attacks from uploaded files.
"""

from __future__ import annotations

from typing import Optional, Union
from xml.etree import ElementTree as ET

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DefusedET


# Anything that means "this is not usable XML"
XML_ERRORS = (ET.ParseError, DefusedXmlException, ValueError)


def local_name(tag: str) -> str:
    """Tag name without its {namespace} prefix."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def strip_namespaces(root: ET.Element) -> ET.Element:
    """
    Rewrite every tag in the tree to its local name.

    QTI exports appear both with and without the ims_qtiasiv1p2 default
    namespace; stripping it lets one set of paths serve both.
    """
    for elem in root.iter():
        if isinstance(elem.tag, str):
            elem.tag = local_name(elem.tag)
    return root


def parse_xml(content: Union[str, bytes]) -> ET.Element:
    """
    Parse XML into a namespace-free element tree.

    Raises:
        ET.ParseError / DefusedXmlException on malformed or hostile input
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    root = DefusedET.fromstring(content)
    return strip_namespaces(root)


def root_tag(content: Union[str, bytes]) -> Optional[str]:
    """Local name of the document element, or None if it does not parse."""
    try:
        return parse_xml(content).tag
    except XML_ERRORS:
        return None


def get_text(elem: Optional[ET.Element], default: str = "") -> str:
    """Safely get the full text of an element (including descendants)."""
    if elem is None:
        return default
    text = "".join(elem.itertext()).strip()
    return text or default


def find_first(elem: ET.Element, *paths: str) -> Optional[ET.Element]:
    """Return the first match among several element paths, in priority order."""
    for path in paths:
        found = elem.find(path)
        if found is not None:
            return found
    return None


def decode_xml_bytes(data: bytes) -> str:
    """Decode an XML payload, tolerating a BOM and stray bytes."""
    return data.decode("utf-8-sig", errors="replace")
