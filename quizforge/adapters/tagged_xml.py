"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

tagged_xml.py

Generic quiz adapter for LMS assessment XML.

QTI 1.2, Blackboard QTI and Moodle XML share the same overall shape: a
document with a title, a list of item elements, and per item a vendor type
string, an HTML stem, a score and (for choice questions) a list of answer
choices. They differ only in vocabulary and in where each piece lives. This
module holds the one parsing loop; each dialect supplies a DialectConfig
(see dialects.py) describing its vocabulary and selectors.

Error handling:
- A document that does not parse yields a degraded quiz (no questions,
  confidence 0, an "Import failed" warning).
- An item that fails to parse is dropped and counted; the rest of the
  document is still imported. The count is returned in ParseResult.
- A single image that cannot be resolved is skipped; the question is kept.

Usage:
    from quizforge.adapters.dialects import QTI12
    from quizforge.adapters.tagged_xml import parse_document

    result = parse_document(xml_text, QTI12, source_file="quiz.xml")
    quiz = result.quiz
"""

from __future__ import annotations

import logging
import re
import zipfile
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import unquote
from xml.etree import ElementTree as ET

from quizforge.archive import ArchiveError, find_member, read_member
from quizforge.html_text import extract_mattext_text, find_image_sources, raw_mattext, remove_img_tags
from quizforge.images import image_from_data_url, make_image
from quizforge.model import (
    CHOICE_TYPES,
    Image,
    Option,
    Question,
    Quiz,
    QuizMetadata,
    degraded_quiz,
)
from quizforge.xml_utils import find_first, get_text, parse_xml


logger = logging.getLogger(__name__)

# Canvas writes image references relative to this placeholder; it may arrive
# URL-encoded (%24) or literal ($)
FILEBASE_RE = re.compile(r"(?:%24|\$)IMS-CC-FILEBASE(?:%24|\$)/", re.IGNORECASE)

# Images in a package are looked up at these prefixes, in order
ARCHIVE_IMAGE_PREFIXES = ("", "resources/")


# ============================================================================
# Data Classes
# ============================================================================

# Resolves a non-archive image reference (e.g. Moodle @@PLUGINFILE@@) from
# data embedded in the item itself
LocalImageResolver = Callable[[ET.Element, str], Optional[Tuple[str, bytes]]]


@dataclass
class DialectConfig:
    """
    Everything that distinguishes one LMS XML dialect from another.

    Selectors are ElementTree paths evaluated against a namespace-free tree.
    """
    name: str                       # Human label used in error messages
    source_type: str                # Model source type tag
    confidence: int                 # Fixed per-dialect parse confidence
    default_title: str
    default_description: str
    default_source_file: str
    item_path: str                  # Path to every item, from the root
    type_map: Dict[str, str]        # Vendor type string -> model type
    text_paths: Tuple[str, ...]     # Question stem selectors, in priority order
    read_vendor_type: Callable[[ET.Element], str]
    read_points: Callable[[ET.Element], Optional[str]]
    read_options: Callable[[ET.Element, str], List[Option]]
    fallback_text_path: Optional[str] = None
    skip_item: Callable[[ET.Element], bool] = lambda item: False
    refine_type: Optional[Callable[[ET.Element, str], str]] = None
    read_extras: Optional[Callable[[ET.Element, Question], None]] = None
    read_title: Callable[[ET.Element], Optional[str]] = lambda root: None
    read_description: Callable[[ET.Element], Optional[str]] = lambda root: None
    resolve_local_image: Optional[LocalImageResolver] = None


@dataclass
class ParseResult:
    """A parsed quiz plus the number of items that were dropped."""
    quiz: Quiz
    dropped_items: int = 0
    errors: List[str] = field(default_factory=list)


# ============================================================================
# Shared Helpers
# ============================================================================

def option_letter(index: int) -> str:
    """0 -> 'a', 1 -> 'b', ..."""
    return chr(ord("a") + index)


def parse_points(raw: Optional[str]) -> float:
    """Score text to a point value; missing, zero or invalid means 1."""
    try:
        return float(raw or "") or 1.0
    except ValueError:
        return 1.0


def normalize_true_false_ids(options: List[Option]) -> List[Option]:
    """
    Rename the two options of a true/false question to 't' and 'f'.

    Matching is by option text ("true"/"t", "false"/"f", any case). Options
    with other text keep their ids; questions with other than exactly two
    options are left alone.
    """
    if len(options) != 2:
        return options
    for option in options:
        lower = option.text.strip().lower()
        if lower in ("true", "t"):
            option.id = "t"
        elif lower in ("false", "f"):
            option.id = "f"
    return options


def extract_correct_answer_ids(item: ET.Element) -> List[str]:
    """
    Collect the response ids a QTI item scores as correct.

    Two mechanisms are unioned, order kept and duplicates removed:
    1. respcondition blocks whose setvar (varname SCORE or unnamed) sets a
       positive score: every varequal id inside the condition
    2. Canvas-style <correctresponse><value>id</value></correctresponse>
    """
    correct_ids: List[str] = []

    def add(value: Optional[str]) -> None:
        value = (value or "").strip()
        if value and value not in correct_ids:
            correct_ids.append(value)

    for condition in item.iter("respcondition"):
        setvar = condition.find(".//setvar")
        if setvar is None:
            continue
        varname = setvar.get("varname") or setvar.get("name") or ""
        try:
            score = float((setvar.text or "").strip())
        except ValueError:
            continue
        if varname.upper() in ("SCORE", "") and score > 0:
            for varequal in condition.iter("varequal"):
                add(varequal.text)

    for correct_response in item.iter("correctresponse"):
        for value in correct_response.iter("value"):
            add(value.text)

    return correct_ids


def read_metadata_fields(item: ET.Element) -> Dict[str, str]:
    """qtimetadatafield label/entry pairs of an item or assessment."""
    fields: Dict[str, str] = {}
    for metadata_field in item.iter("qtimetadatafield"):
        label = get_text(metadata_field.find("fieldlabel"))
        if label:
            fields[label] = get_text(metadata_field.find("fieldentry"))
    return fields


# ============================================================================
# Image Resolution
# ============================================================================

def _archive_image(archive: zipfile.ZipFile, src: str) -> Optional[Image]:
    path = unquote(FILEBASE_RE.sub("", src))
    for prefix in ARCHIVE_IMAGE_PREFIXES:
        member = find_member(archive, prefix + path)
        if member is None:
            continue
        data = read_member(archive, member)
        return make_image(data, path.rsplit("/", 1)[-1], source="qti")
    return None


def resolve_images(
    raw_html: str,
    item: ET.Element,
    config: DialectConfig,
    archive: Optional[zipfile.ZipFile] = None,
) -> List[Image]:
    """
    Turn the <img> references of a question body into Image records.

    data: URLs are taken as-is. Other references are looked up in data the
    item embeds (dialect hook), then in the accompanying archive after
    removing the $IMS-CC-FILEBASE$ placeholder and URL-decoding the path
    (tried as given, then under resources/). Unresolvable references are
    skipped.
    """
    images: List[Image] = []

    for src in find_image_sources(raw_html):
        try:
            if src.startswith("data:"):
                images.append(image_from_data_url(src, f"image_{len(images) + 1}", source="qti"))
                continue

            if config.resolve_local_image is not None:
                embedded = config.resolve_local_image(item, src)
                if embedded is not None:
                    filename, data = embedded
                    images.append(make_image(data, filename, source="qti"))
                    continue

            if archive is not None:
                image = _archive_image(archive, src)
                if image is not None:
                    images.append(image)
                else:
                    logger.debug("Image not found in package: %s", src)

        except (ArchiveError, ValueError) as e:
            logger.warning("Failed to extract image %s: %s", src, e)

    return images


# ============================================================================
# Parsing
# ============================================================================

def parse_item(
    item: ET.Element,
    number: int,
    config: DialectConfig,
    archive: Optional[zipfile.ZipFile] = None,
) -> Question:
    """Parse one item element into a Question. Raises on malformed items."""
    vendor_type = config.read_vendor_type(item)
    qtype = config.type_map.get(vendor_type, "multiple_choice")
    if config.refine_type is not None:
        qtype = config.refine_type(item, qtype)

    stem = find_first(item, *config.text_paths)
    raw_html = raw_mattext(stem)
    text = remove_img_tags(extract_mattext_text(stem))
    if not text and config.fallback_text_path:
        text = get_text(item.find(config.fallback_text_path))

    images = resolve_images(raw_html, item, config, archive)

    options: List[Option] = []
    if qtype in CHOICE_TYPES:
        options = config.read_options(item, qtype)
        if qtype == "true_false":
            options = normalize_true_false_ids(options)

    question = Question(
        id=f"q{number}",
        type=qtype,
        text=text,
        points=parse_points(config.read_points(item)),
        options=options,
        images=images,
        confidence=config.confidence,
    )
    if config.read_extras is not None:
        config.read_extras(item, question)

    question.sync_correct_answer()
    question.check_warnings()
    return question


def parse_document(
    content: Union[str, bytes],
    config: DialectConfig,
    source_file: str = "",
    archive: Optional[zipfile.ZipFile] = None,
) -> ParseResult:
    """
    Parse an LMS XML document with the given dialect.

    Args:
        content: XML text or bytes
        config: Dialect configuration (QTI12, MOODLE, BLACKBOARD)
        source_file: Name recorded in quiz metadata
        archive: Open package the document came from, for image lookup

    Returns:
        ParseResult; never raises
    """
    source_file = source_file or config.default_source_file

    try:
        root = parse_xml(content)

        questions: List[Question] = []
        errors: List[str] = []
        dropped = 0

        for item in root.iterfind(config.item_path):
            if config.skip_item(item):
                continue
            try:
                questions.append(parse_item(item, len(questions) + 1, config, archive))
            except Exception as e:
                dropped += 1
                ident = item.get("ident") or item.get("title") or f"#{len(questions) + dropped}"
                errors.append(f"{ident}: {e}")
                logger.warning("Dropped %s item %s: %s", config.name, ident, e)

        quiz = Quiz(
            title=config.read_title(root) or config.default_title,
            description=config.read_description(root) or config.default_description,
            questions=questions,
            metadata=QuizMetadata(
                source_type=config.source_type,
                source_file=source_file,
                parse_confidence=config.confidence,
                answer_key_found=True,
            ),
        )
        quiz.refresh_metadata()

        logger.info(
            "Parsed %s: %d question(s), %d image(s), %d dropped",
            config.name, len(questions), quiz.metadata.image_count, dropped,
        )
        return ParseResult(quiz=quiz, dropped_items=dropped, errors=errors)

    except Exception as e:
        logger.warning("%s parsing error in %s: %s", config.name, source_file, e)
        return ParseResult(quiz=degraded_quiz(config.source_type, source_file, config.name, e))
