"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

detect.py

Classify uploaded input into one of a closed set of format tags.

Detection runs in passes:
1. Extension / MIME type: .pdf, .docx, .txt are final; .xml and .zip need
   a content sniff.
2. XML sniff: root element <questestinterop> is QTI (Blackboard when the
   raw text carries bbmd_ / bb_question_type markers), <quiz> is Moodle.
3. Archive sniff: the IMS manifest names the assessment resource, which is
   then XML-sniffed; without a manifest, top-level .xml members are tried.

Malformed XML is never an error here: it is simply "unrecognized", and the
caller falls back to plain-text ingestion.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from typing import Optional, Union

from quizforge.archive import ArchiveError, find_member, member_names, open_archive, read_member_text
from quizforge.xml_utils import XML_ERRORS, parse_xml


logger = logging.getLogger(__name__)


# ============================================================================
# Format Tags
# ============================================================================

TEXT = "text"
DOCX = "docx"
PDF = "pdf"
QTI = "qti_1.2"
MOODLE = "moodle_xml"
BLACKBOARD = "blackboard_qti"
IMS_PACKAGE = "ims_package"
UNRECOGNIZED = "unrecognized"

# Intermediate tags from the extension pass
XML = "xml"
ZIP = "zip"

LMS_XML_FORMATS = (QTI, MOODLE, BLACKBOARD)

_EXTENSION_FORMATS = {
    ".pdf": PDF,
    ".docx": DOCX,
    ".txt": TEXT,
    ".xml": XML,
    ".zip": ZIP,
}

_MIME_FORMATS = {
    "application/pdf": PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DOCX,
    "text/plain": TEXT,
    "text/xml": XML,
    "application/xml": XML,
    "application/zip": ZIP,
    "application/x-zip-compressed": ZIP,
}

BLACKBOARD_MARKERS = ("bbmd_", "bb_question_type")


@dataclass
class DetectedPackage:
    """An assessment document located inside an IMS package."""
    format: str
    content: str
    member: str


# ============================================================================
# Detection Passes
# ============================================================================

def detect_by_filename(filename: str, mime_type: Optional[str] = None) -> Optional[str]:
    """
    First pass: classify by extension, then by MIME type.

    Returns:
        pdf / docx / text, or xml / zip (content sniff still needed), or
        None when the file type is not accepted at all
    """
    name = (filename or "").lower()
    for extension, fmt in _EXTENSION_FORMATS.items():
        if name.endswith(extension):
            return fmt
    if mime_type:
        return _MIME_FORMATS.get(mime_type.split(";")[0].strip().lower())
    return None


def detect_lms_format(content: Union[str, bytes]) -> str:
    """
    Sniff an XML document for one of the LMS quiz dialects.

    Returns:
        qti_1.2 / blackboard_qti / moodle_xml, or "unrecognized"
    """
    try:
        root = parse_xml(content)
    except XML_ERRORS as e:
        logger.debug("XML sniff failed: %s", e)
        return UNRECOGNIZED

    raw = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content

    if root.tag == "questestinterop":
        if any(marker in raw for marker in BLACKBOARD_MARKERS):
            return BLACKBOARD
        return QTI

    if root.tag == "quiz":
        return MOODLE

    return UNRECOGNIZED


def _resource_href(resource) -> str:
    file_elem = resource.find(".//file")
    href = file_elem.get("href", "") if file_elem is not None else ""
    return href or resource.get("href", "")


def detect_zip_format(archive: zipfile.ZipFile) -> Optional[DetectedPackage]:
    """
    Locate and sniff the assessment document inside an IMS package.

    Returns:
        DetectedPackage, or None when no recognisable quiz document exists
    """
    try:
        manifest_name = find_member(archive, "imsmanifest.xml")

        if manifest_name is None:
            # No manifest: try top-level XML members directly
            for name in member_names(archive):
                if name.lower().endswith(".xml") and "/" not in name:
                    content = read_member_text(archive, name)
                    fmt = detect_lms_format(content)
                    if fmt != UNRECOGNIZED:
                        return DetectedPackage(fmt, content, name)
            return None

        manifest = parse_xml(read_member_text(archive, manifest_name))

        for resource in manifest.iter("resource"):
            resource_type = resource.get("type", "").lower()
            if "qti" not in resource_type and "assessment" not in resource_type:
                continue

            href = _resource_href(resource)
            member = find_member(archive, href) if href else None
            if member is None:
                continue

            content = read_member_text(archive, member)
            fmt = detect_lms_format(content)
            if fmt != UNRECOGNIZED:
                return DetectedPackage(fmt, content, member)

        return None

    except (ArchiveError,) + XML_ERRORS as e:
        logger.warning("Package format detection failed: %s", e)
        return None


def detect_format(filename: str, data: Optional[bytes] = None, mime_type: Optional[str] = None) -> str:
    """
    Full classification of one uploaded file.

    Returns:
        One of text / docx / pdf / qti_1.2 / moodle_xml / blackboard_qti /
        ims_package, or "unrecognized"
    """
    fmt = detect_by_filename(filename, mime_type)

    if fmt is None:
        return UNRECOGNIZED

    if fmt == XML:
        if data is None:
            return UNRECOGNIZED
        return detect_lms_format(data)

    if fmt == ZIP:
        if data is None:
            return UNRECOGNIZED
        try:
            with open_archive(data) as archive:
                return IMS_PACKAGE if detect_zip_format(archive) else UNRECOGNIZED
        except ArchiveError as e:
            logger.warning("Could not open %s: %s", filename, e)
            return UNRECOGNIZED

    return fmt
