"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

dialects.py

Dialect configurations for the tagged-XML adapter: QTI 1.2 (Canvas and
other IMS exports), Moodle XML and Blackboard QTI.

Each dialect names its type vocabulary, where the question stem, score and
answer choices live, and a fixed parse confidence:

    QTI 1.2      question_type / points_possible metadata fields     95
    Moodle XML   <question type="..."> / <defaultgrade>              90
    Blackboard   <bbmd_questiontype> / <qmd_absolutescore_max>       88

Moodle marks every answer with fraction > 0 as correct, so partial-credit
answers import as fully correct. This is a known approximation and is kept
for compatibility with existing exports.
"""

from __future__ import annotations

import base64
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote
from xml.etree import ElementTree as ET

from quizforge.adapters.tagged_xml import (
    DialectConfig,
    ParseResult,
    extract_correct_answer_ids,
    option_letter,
    parse_document,
    read_metadata_fields,
)
from quizforge.html_text import extract_mattext_text, raw_mattext, strip_html_tags
from quizforge.model import Option, Question
from quizforge.xml_utils import find_first, get_text


# ============================================================================
# Type Vocabularies
# ============================================================================

QTI_TYPE_MAP: Dict[str, str] = {
    "multiple_choice_question": "multiple_choice",
    "true_false_question": "true_false",
    "short_answer_question": "short_answer",
    "essay_question": "essay",
    "matching_question": "matching",
    "multiple_answers_question": "multiple_select",
    "fill_in_multiple_blanks_question": "fill_blank",
    "numerical_question": "numerical",
    "calculated_question": "numerical",
    "text_only_question": "essay",
    "ordering_question": "ordering",
}

MOODLE_TYPE_MAP: Dict[str, str] = {
    "multichoice": "multiple_choice",
    "truefalse": "true_false",
    "shortanswer": "short_answer",
    "essay": "essay",
    "matching": "matching",
    "numerical": "numerical",
    "cloze": "fill_blank",
    "multianswer": "fill_blank",
}

BLACKBOARD_TYPE_MAP: Dict[str, str] = {
    "Multiple Choice": "multiple_choice",
    "True/False": "true_false",
    "Short Response": "short_answer",
    "Essay": "essay",
    "Matching": "matching",
    "Fill in the Blank": "fill_blank",
    "Numeric": "numerical",
    "Calculated": "numerical",
    "Multiple Answer": "multiple_select",
    "Ordering": "ordering",
}

MOODLE_SKIPPED_TYPES = ("category", "description")
MOODLE_PLUGINFILE = "@@PLUGINFILE@@/"


# ============================================================================
# QTI Family (QTI 1.2 and Blackboard)
# ============================================================================

def _assessment_title(root: ET.Element) -> Optional[str]:
    assessment = root if root.tag == "assessment" else root.find(".//assessment")
    if assessment is None:
        return None
    return assessment.get("title") or None


def _assessment_description(root: ET.Element) -> Optional[str]:
    """Description stored in <assessment><objectives> (as written on export)."""
    objectives = root.find(".//assessment/objectives")
    if objectives is None:
        return None
    return extract_mattext_text(objectives.find(".//mattext")) or None


def _qti_options(text_paths: Tuple[str, ...]):
    """Build a response_label reader that takes option text from text_paths."""

    def read_options(item: ET.Element, qtype: str) -> List[Option]:
        correct_ids = extract_correct_answer_ids(item)
        options = []
        for index, label in enumerate(item.iter("response_label")):
            option_id = label.get("ident") or option_letter(index)
            options.append(Option(
                id=option_id,
                text=extract_mattext_text(find_first(label, *text_paths)),
                is_correct=option_id in correct_ids,
            ))
        return options

    return read_options


def _qti_vendor_type(item: ET.Element) -> str:
    return read_metadata_fields(item).get("question_type") or "multiple_choice_question"


def _qti_points(item: ET.Element) -> Optional[str]:
    return read_metadata_fields(item).get("points_possible")


QTI12 = DialectConfig(
    name="QTI",
    source_type="qti",
    confidence=95,
    default_title="Imported QTI Quiz",
    default_description="Imported from QTI file",
    default_source_file="QTI Import",
    item_path=".//item",
    type_map=QTI_TYPE_MAP,
    text_paths=(".//presentation/material/mattext", ".//material/mattext"),
    read_vendor_type=_qti_vendor_type,
    read_points=_qti_points,
    read_options=_qti_options((".//mattext",)),
    read_title=_assessment_title,
    read_description=_assessment_description,
)


BLACKBOARD = DialectConfig(
    name="Blackboard",
    source_type="blackboard",
    confidence=88,
    default_title="Imported Blackboard Quiz",
    default_description="Imported from Blackboard",
    default_source_file="Blackboard Import",
    item_path=".//item",
    type_map=BLACKBOARD_TYPE_MAP,
    text_paths=(
        ".//presentation/flow/material/mat_extension/mat_formattedtext",
        ".//material/mattext",
    ),
    read_vendor_type=lambda item: get_text(item.find(".//bbmd_questiontype")),
    read_points=lambda item: get_text(item.find(".//qmd_absolutescore_max")) or None,
    read_options=_qti_options((".//mat_formattedtext", ".//mattext")),
    read_title=_assessment_title,
)


# ============================================================================
# Moodle XML
# ============================================================================

def _moodle_fraction(answer: ET.Element) -> float:
    try:
        return float(answer.get("fraction") or 0)
    except ValueError:
        return 0.0


def _moodle_text(elem: Optional[ET.Element]) -> str:
    return strip_html_tags(raw_mattext(elem.find("text") if elem is not None else None))


def _moodle_refine_type(item: ET.Element, qtype: str) -> str:
    """multichoice with <single>false</single> allows several answers."""
    if qtype == "multiple_choice" and item.get("type") == "multichoice":
        if get_text(item.find("single")).lower() in ("false", "0"):
            return "multiple_select"
    return qtype


def _moodle_options(item: ET.Element, qtype: str) -> List[Option]:
    return [
        Option(
            id=option_letter(index),
            text=_moodle_text(answer),
            is_correct=_moodle_fraction(answer) > 0,
        )
        for index, answer in enumerate(item.findall("answer"))
    ]


def _moodle_extras(item: ET.Element, question: Question) -> None:
    """Matching pairs, numerical answer/tolerance and general feedback."""
    if question.type == "matching":
        for subquestion in item.findall("subquestion"):
            left = _moodle_text(subquestion)
            right = get_text(subquestion.find("answer/text"))
            if left or right:
                question.matching_pairs.append({"left": left, "right": right})

    elif question.type == "numerical":
        for answer in item.findall("answer"):
            if _moodle_fraction(answer) > 0:
                question.correct_answer = get_text(answer.find("text")) or None
                try:
                    question.tolerance = float(get_text(answer.find("tolerance"), "0"))
                except ValueError:
                    question.tolerance = None
                break

    feedback = _moodle_text(item.find("generalfeedback"))
    if feedback:
        question.explanation = feedback


def _moodle_embedded_image(item: ET.Element, src: str) -> Optional[Tuple[str, bytes]]:
    """Resolve @@PLUGINFILE@@/name from a base64 <file> element in the question."""
    if not src.startswith(MOODLE_PLUGINFILE):
        return None
    name = unquote(src[len(MOODLE_PLUGINFILE):])
    for file_elem in item.iter("file"):
        if file_elem.get("name") == name and file_elem.get("encoding", "base64") == "base64":
            return name, base64.b64decode((file_elem.text or "").strip())
    return None


MOODLE = DialectConfig(
    name="Moodle",
    source_type="moodle",
    confidence=90,
    default_title="Imported Moodle Quiz",
    default_description="Imported from Moodle XML format",
    default_source_file="Moodle Import",
    item_path=".//question",
    type_map=MOODLE_TYPE_MAP,
    text_paths=("questiontext/text",),
    fallback_text_path="name/text",
    read_vendor_type=lambda item: item.get("type", ""),
    read_points=lambda item: get_text(item.find("defaultgrade")) or None,
    read_options=_moodle_options,
    skip_item=lambda item: item.get("type") in MOODLE_SKIPPED_TYPES,
    refine_type=_moodle_refine_type,
    read_extras=_moodle_extras,
    resolve_local_image=_moodle_embedded_image,
)


# ============================================================================
# Entry Points
# ============================================================================

# Keyed by the format tags produced by quizforge.detect
DIALECTS: Dict[str, DialectConfig] = {
    "qti_1.2": QTI12,
    "moodle_xml": MOODLE,
    "blackboard_qti": BLACKBOARD,
}


def parse_qti(content, source_file: str = "", archive=None) -> ParseResult:
    return parse_document(content, QTI12, source_file, archive)


def parse_moodle(content, source_file: str = "", archive=None) -> ParseResult:
    return parse_document(content, MOODLE, source_file, archive)


def parse_blackboard(content, source_file: str = "", archive=None) -> ParseResult:
    return parse_document(content, BLACKBOARD, source_file, archive)
