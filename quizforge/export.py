"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

export.py

Serialize a Quiz to a QTI 1.2 assessment plus an IMS content package.

Package layout (zip):

    imsmanifest.xml              IMS manifest, one imsqti_xmlv1p2 resource
    assessment_<quiz id>.xml     QTI 1.2 questestinterop document
    image_1.png, image_2.jpg...  Question images, in question order

Item rules:
- Choice questions (multiple choice, multiple select, true/false) emit a
  response_lid with one response_label per option. A single-answer item
  with a correct option gets one respcondition setting SCORE to 100 on a
  match; a multiple-select item gets one respcondition requiring every
  correct option. Items without a correct option are left ungraded.
- Every other type emits an open response (response_str/render_fib) and no
  scoring; these are graded by hand in the LMS.
- Question and option text is XML-escaped and wrapped as <p> HTML inside
  CDATA. Images are referenced through the $IMS-CC-FILEBASE$ placeholder.

Usage:
    from quizforge.export import ExportSettings, build_package_zip, package_filename

    data = build_package_zip(quiz, ExportSettings(title="Unit 3"))
    Path(package_filename("Unit 3")).write_bytes(data)
"""

from __future__ import annotations

import io
import logging
import re
import uuid
import zipfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from xml.dom import minidom
from xml.etree import ElementTree as ET

from quizforge.images import data_url_to_bytes, extension_for_mime
from quizforge.model import Image, Question, Quiz


logger = logging.getLogger(__name__)

QTI_NS = "http://www.imsglobal.org/xsd/ims_qtiasiv1p2"
IMSCP_NS = "http://www.imsglobal.org/xsd/imsccv1p1/imscp_v1p1"
LOM_NS = "http://ltsc.ieee.org/xsd/imsccv1p1/LOM/resource"

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
FILEBASE = "%24IMS-CC-FILEBASE%24"
RESPONSE_IDENT = "response1"

# Model type -> QTI question_type (inverse of the QTI import table)
EXPORT_TYPE_MAP: Dict[str, str] = {
    "multiple_choice": "multiple_choice_question",
    "multiple_select": "multiple_answers_question",
    "true_false": "true_false_question",
    "short_answer": "short_answer_question",
    "essay": "essay_question",
    "fill_blank": "fill_in_multiple_blanks_question",
    "matching": "matching_question",
    "ordering": "ordering_question",
    "numerical": "numerical_question",
}

_XML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ExportSettings:
    """User-editable quiz settings applied at export time."""
    title: Optional[str] = None          # Defaults to the quiz title
    description: Optional[str] = None    # Defaults to the quiz description
    time_limit: int = 0                  # Minutes; 0 means no limit
    attempts_allowed: int = 1

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "ExportSettings":
        """Build settings from a config mapping, ignoring unknown keys."""
        data = data or {}
        return cls(
            title=data.get("title"),
            description=data.get("description"),
            time_limit=int(data.get("time_limit") or 0),
            attempts_allowed=int(data.get("attempts_allowed") or 1),
        )


@dataclass
class ExportBundle:
    """Everything that goes into the package zip."""
    assessment_id: str
    xml: str
    manifest: str
    assets: List[Tuple[str, bytes]] = field(default_factory=list)


# ============================================================================
# XML Helpers
# ============================================================================

def xml_escape(text: Any) -> str:
    """Escape the five XML special characters."""
    text = str(text)
    for char, entity in _XML_ESCAPES:
        text = text.replace(char, entity)
    return text


class _CDataSections:
    """
    ElementTree cannot emit CDATA; text is stored as placeholders and
    substituted after serialization.
    """

    def __init__(self):
        self.sections: List[str] = []
        self.token = f"__CDATA_{uuid.uuid4().hex[:8]}_"

    def add(self, content: str) -> str:
        self.sections.append(content)
        return f"{self.token}{len(self.sections) - 1}__"

    def substitute(self, xml_text: str) -> str:
        def replace(match: "re.Match[str]") -> str:
            content = self.sections[int(match.group(1))]
            return "<![CDATA[" + content.replace("]]>", "]]]]><![CDATA[>") + "]]>"
        return re.sub(re.escape(self.token) + r"(\d+)__", replace, xml_text)


def prettify_xml(elem: ET.Element) -> str:
    """Return a pretty-printed XML string with a UTF-8 declaration."""
    rough_string = ET.tostring(elem, encoding="unicode")
    reparsed = minidom.parseString(rough_string)
    pretty = reparsed.toprettyxml(indent="  ")
    return pretty.replace('<?xml version="1.0" ?>', XML_DECLARATION, 1)


def add_text_element(parent: ET.Element, tag: str, text: str, **attribs) -> ET.Element:
    """Add a text element to parent."""
    elem = ET.SubElement(parent, tag, **attribs)
    elem.text = text
    return elem


def add_qti_metadata(parent: ET.Element, label: str, entry: str) -> None:
    """Add a QTI metadata field."""
    metadata_field = ET.SubElement(parent, "qtimetadatafield")
    add_text_element(metadata_field, "fieldlabel", label)
    add_text_element(metadata_field, "fieldentry", entry)


def format_points(points: float) -> str:
    """2.0 -> '2', 2.5 -> '2.5'"""
    return str(int(points)) if float(points).is_integer() else str(points)


# ============================================================================
# Assessment
# ============================================================================

class _AssetCollector:
    """Assigns sequential file names to question images as they are written."""

    def __init__(self):
        self.assets: List[Tuple[str, bytes]] = []

    def add(self, image: Image) -> Optional[str]:
        try:
            data = data_url_to_bytes(image.data_url)
        except ValueError as e:
            logger.warning("Skipping image %s: %s", image.filename, e)
            return None
        filename = f"image_{len(self.assets) + 1}.{extension_for_mime(image.mime_type)}"
        self.assets.append((filename, data))
        return filename


def question_html(question: Question, assets: _AssetCollector) -> str:
    """Escaped stem as <p> HTML followed by one <p><img> per image."""
    parts = [f"<p>{xml_escape(question.text)}</p>"]
    for image in question.images:
        filename = assets.add(image)
        if filename is None:
            continue
        alt = xml_escape(image.filename or "Question image")
        parts.append(
            f'<p><img src="{FILEBASE}/{filename}" alt="{alt}" '
            f'style="max-width: 100%; height: auto;" /></p>'
        )
    return "".join(parts)


def _add_scoring(item: ET.Element, question: Question) -> None:
    correct = question.correct_options()
    if not correct:
        return

    resprocessing = ET.SubElement(item, "resprocessing")
    outcomes = ET.SubElement(resprocessing, "outcomes")
    ET.SubElement(outcomes, "decvar", maxvalue="100", minvalue="0", varname="SCORE", vartype="Decimal")

    respcondition = ET.SubElement(resprocessing, "respcondition", attrib={"continue": "No"})
    conditionvar = ET.SubElement(respcondition, "conditionvar")

    if question.type == "multiple_select" and len(correct) > 1:
        condition_parent = ET.SubElement(conditionvar, "and")
        for option in correct:
            add_text_element(condition_parent, "varequal", option.id, respident=RESPONSE_IDENT)
    else:
        add_text_element(conditionvar, "varequal", correct[0].id, respident=RESPONSE_IDENT)

    add_text_element(respcondition, "setvar", "100", action="Set", varname="SCORE")


def add_choice_response(presentation: ET.Element, item: ET.Element, question: Question,
                        cdata: _CDataSections) -> None:
    """Add choice-based response and scoring to a QTI item."""
    rcardinality = "Multiple" if question.type == "multiple_select" else "Single"
    response_lid = ET.SubElement(presentation, "response_lid", ident=RESPONSE_IDENT, rcardinality=rcardinality)
    render_choice = ET.SubElement(response_lid, "render_choice")

    for option in question.options:
        response_label = ET.SubElement(render_choice, "response_label", ident=option.id)
        material = ET.SubElement(response_label, "material")
        add_text_element(material, "mattext", cdata.add(f"<p>{xml_escape(option.text)}</p>"), texttype="text/html")

    _add_scoring(item, question)


def add_open_response(presentation: ET.Element) -> None:
    """Add a free-text response box; open responses are never auto-graded."""
    response_str = ET.SubElement(presentation, "response_str", ident=RESPONSE_IDENT, rcardinality="Single")
    render_fib = ET.SubElement(response_str, "render_fib")
    ET.SubElement(render_fib, "response_label", ident="answer1", rshuffle="No")


def add_qti_item(section: ET.Element, question: Question, number: int,
                 cdata: _CDataSections, assets: _AssetCollector) -> None:
    """Add a question item to the QTI section."""
    item = ET.SubElement(section, "item", ident=f"item_{question.id}", title=f"Question {number}")

    itemmetadata = ET.SubElement(item, "itemmetadata")
    qtimetadata = ET.SubElement(itemmetadata, "qtimetadata")
    add_qti_metadata(qtimetadata, "question_type", EXPORT_TYPE_MAP.get(question.type, "multiple_choice_question"))
    add_qti_metadata(qtimetadata, "points_possible", format_points(question.points))

    presentation = ET.SubElement(item, "presentation")
    material = ET.SubElement(presentation, "material")
    add_text_element(material, "mattext", cdata.add(question_html(question, assets)), texttype="text/html")

    if question.is_choice:
        add_choice_response(presentation, item, question, cdata)
    else:
        add_open_response(presentation)


def generate_qti_assessment(quiz: Quiz, settings: ExportSettings, assessment_id: str,
                            assets: _AssetCollector) -> str:
    """Generate the QTI 1.2 document for a quiz."""
    cdata = _CDataSections()
    title = settings.title or quiz.title
    description = quiz.description if settings.description is None else settings.description

    root = ET.Element("questestinterop")
    root.set("xmlns", QTI_NS)

    assessment = ET.SubElement(root, "assessment", ident=assessment_id, title=title)

    qtimetadata = ET.SubElement(assessment, "qtimetadata")
    if settings.time_limit > 0:
        add_qti_metadata(qtimetadata, "qmd_timelimit", str(settings.time_limit * 60))
    add_qti_metadata(qtimetadata, "cc_maxattempts", str(settings.attempts_allowed))

    if description:
        objectives = ET.SubElement(assessment, "objectives")
        material = ET.SubElement(objectives, "material")
        add_text_element(material, "mattext", cdata.add(f"<p>{xml_escape(description)}</p>"), texttype="text/html")

    section = ET.SubElement(assessment, "section", ident="root_section")
    for number, question in enumerate(quiz.questions, 1):
        add_qti_item(section, question, number, cdata, assets)

    return cdata.substitute(prettify_xml(root))


# ============================================================================
# Manifest
# ============================================================================

def generate_manifest(quiz: Quiz, title: str, assessment_id: str, asset_names: List[str]) -> str:
    """Generate imsmanifest.xml listing the assessment and every image."""
    ET.register_namespace("", IMSCP_NS)
    ET.register_namespace("lom", LOM_NS)

    manifest = ET.Element(f"{{{IMSCP_NS}}}manifest", identifier=f"manifest_{quiz.id}")

    metadata = ET.SubElement(manifest, f"{{{IMSCP_NS}}}metadata")
    add_text_element(metadata, f"{{{IMSCP_NS}}}schema", "IMS Content")
    add_text_element(metadata, f"{{{IMSCP_NS}}}schemaversion", "1.1.3")
    lom = ET.SubElement(metadata, f"{{{LOM_NS}}}lom")
    general = ET.SubElement(lom, f"{{{LOM_NS}}}general")
    title_elem = ET.SubElement(general, f"{{{LOM_NS}}}title")
    add_text_element(title_elem, f"{{{LOM_NS}}}string", title)

    ET.SubElement(manifest, f"{{{IMSCP_NS}}}organizations")

    resources = ET.SubElement(manifest, f"{{{IMSCP_NS}}}resources")
    resource = ET.SubElement(
        resources, f"{{{IMSCP_NS}}}resource",
        identifier=assessment_id, type="imsqti_xmlv1p2",
    )
    ET.SubElement(resource, f"{{{IMSCP_NS}}}file", href=f"{assessment_id}.xml")
    for name in asset_names:
        ET.SubElement(resource, f"{{{IMSCP_NS}}}file", href=name)

    return prettify_xml(manifest)


# ============================================================================
# Entry Points
# ============================================================================

def export_quiz(quiz: Quiz, settings: Optional[ExportSettings] = None) -> ExportBundle:
    """
    Serialize a quiz to QTI XML, an IMS manifest and image assets.

    The quiz itself is not modified.
    """
    settings = settings or ExportSettings()
    assessment_id = f"assessment_{quiz.id}"
    assets = _AssetCollector()

    xml_text = generate_qti_assessment(quiz, settings, assessment_id, assets)
    manifest = generate_manifest(
        quiz, settings.title or quiz.title, assessment_id, [name for name, _ in assets.assets]
    )

    logger.info("Exported %d question(s) and %d image(s)", len(quiz.questions), len(assets.assets))
    return ExportBundle(assessment_id=assessment_id, xml=xml_text, manifest=manifest, assets=assets.assets)


def package_filename(title: str) -> str:
    """'Unit 3: Cells' -> 'Unit_3__Cells_quiz.zip'"""
    return re.sub(r"[^a-z0-9]", "_", title or "", flags=re.IGNORECASE) + "_quiz.zip"


def build_package_zip(quiz: Quiz, settings: Optional[ExportSettings] = None) -> bytes:
    """Export a quiz and package it as IMS content package bytes."""
    bundle = export_quiz(quiz, settings)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("imsmanifest.xml", bundle.manifest)
        zf.writestr(f"{bundle.assessment_id}.xml", bundle.xml)
        for name, data in bundle.assets:
            zf.writestr(name, data)

    return buffer.getvalue()
