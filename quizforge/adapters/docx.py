"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

docx.py

Word (.docx) adapter: plain text from word/document.xml plus the raster
images under word/media/.

The text pass works on the raw WordprocessingML rather than a parsed tree:
paragraph starts and <w:br/> become newlines, <w:tab/> becomes a tab, run
text is kept, every other tag is dropped, the five XML entities are decoded
and runs of blank lines are collapsed to one.

EMF/WMF media are discarded; browsers and LMS viewers cannot render them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List

from quizforge.archive import ArchiveError, find_member, member_names, open_archive, read_member, read_member_text
from quizforge.images import detect_image_type, is_renderable, make_image
from quizforge.model import Image


logger = logging.getLogger(__name__)

DOCUMENT_PART = "word/document.xml"
MEDIA_PREFIX = "word/media/"

# <w:p> and <w:p w:rsidR=...>, not <w:pPr>/<w:pStyle>
PARAGRAPH_RE = re.compile(r"<w:p(?:\s[^>]*)?/?>")
BREAK_RE = re.compile(r"<w:br\b[^>]*>")
# <w:tab/>, not the <w:tabs> tab-stop list
TAB_RE = re.compile(r"<w:tab(?:\s[^>]*)?/?>")
RUN_TEXT_RE = re.compile(r"<w:t(?:\s[^>]*)?>([^<]*)</w:t>")
TAG_RE = re.compile(r"<[^>]+>")
BLANK_LINES_RE = re.compile(r"\n{3,}")

# &amp; is decoded last so "&amp;lt;" stays "&lt;"
XML_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&amp;", "&"),
)


@dataclass
class DocxExtraction:
    """Text and images pulled from one Word document."""
    text: str = ""
    images: List[Image] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def document_xml_to_text(document_xml: str) -> str:
    """
    Flatten WordprocessingML markup to plain text.

    Example:
        >>> document_xml_to_text('<w:p><w:r><w:t>A &amp; B</w:t></w:r></w:p>')
        'A & B'
    """
    text = PARAGRAPH_RE.sub("\n", document_xml)
    text = BREAK_RE.sub("\n", text)
    text = TAB_RE.sub("\t", text)
    text = RUN_TEXT_RE.sub(r"\1", text)
    text = TAG_RE.sub("", text)
    for entity, char in XML_ENTITIES:
        text = text.replace(entity, char)
    text = BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def extract_docx_images(archive) -> List[Image]:
    """Renderable images under word/media/, in archive order. Bad members are skipped."""
    images: List[Image] = []

    for name in member_names(archive):
        if not name.startswith(MEDIA_PREFIX):
            continue
        try:
            data = read_member(archive, name)
            mime_type = detect_image_type(data, name)
            if not is_renderable(mime_type):
                logger.debug("Skipping unrenderable image %s (%s)", name, mime_type)
                continue
            images.append(make_image(data, name.rsplit("/", 1)[-1], source="docx", mime_type=mime_type))
        except ArchiveError as e:
            logger.warning("Error extracting image %s: %s", name, e)

    return images


def extract_docx(data: bytes, source_file: str = "") -> DocxExtraction:
    """
    Extract text and images from a .docx payload.

    Never raises: an unreadable document yields empty text and a warning.
    """
    result = DocxExtraction()

    try:
        with open_archive(data) as archive:
            document = find_member(archive, DOCUMENT_PART)
            if document is None:
                result.warnings.append(f"{source_file or 'Document'}: no {DOCUMENT_PART} found")
            else:
                result.text = document_xml_to_text(read_member_text(archive, document))

            result.images = extract_docx_images(archive)

    except ArchiveError as e:
        logger.warning("Error extracting text from DOCX %s: %s", source_file, e)
        result.warnings.append(f"Could not read Word document {source_file}: {e}")

    logger.info(
        "Extracted %d characters and %d image(s) from %s",
        len(result.text), len(result.images), source_file or "DOCX",
    )
    return result
