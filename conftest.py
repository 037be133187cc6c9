"""
Shared builders for the QuizForge test suite.

Everything is built in memory: zips with zipfile, images with Pillow, quiz
documents as literal XML.
"""

from __future__ import annotations

import io
import zipfile
from typing import Dict, List, Optional, Sequence

import pytest
from PIL import Image as PILImage

from quizforge.images import make_image
from quizforge.model import Image, Option, Question, Quiz, QuizMetadata


# ============================================================================
# Binary Builders
# ============================================================================

def build_zip(members: Dict[str, bytes], compression: int = zipfile.ZIP_STORED) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression) as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def png_bytes(width: int = 4, height: int = 3, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    PILImage.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


# EMR_HEADER record: type 1 at offset 0, " EMF" signature at offset 40
EMF_BYTES = b"\x01\x00\x00\x00" + b"\x00" * 36 + b" EMF" + b"\x00" * 44


def docx_document_xml(paragraphs: Sequence[str]) -> str:
    body = "".join(
        f'<w:p w:rsidR="00A1"><w:pPr><w:pStyle w:val="Normal"/></w:pPr>'
        f"<w:r><w:t xml:space=\"preserve\">{text}</w:t></w:r></w:p>"
        for text in paragraphs
    )
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{body}</w:body></w:document>"
    )


def build_docx(paragraphs: Sequence[str], media: Optional[Dict[str, bytes]] = None) -> bytes:
    members = {
        "[Content_Types].xml": b"<Types/>",
        "word/document.xml": docx_document_xml(paragraphs).encode("utf-8"),
    }
    for name, data in (media or {}).items():
        members[f"word/media/{name}"] = data
    return build_zip(members)


# ============================================================================
# Model Builders
# ============================================================================

def choice_question(
    qid: str,
    correct: Optional[str] = None,
    qtype: str = "multiple_choice",
    option_ids: Sequence[str] = ("a", "b", "c", "d"),
) -> Question:
    if qtype == "true_false":
        option_ids = ("t", "f")
    question = Question(
        id=qid,
        type=qtype,
        text=f"Question {qid}?",
        points=2.0,
        options=[Option(oid, f"Option {oid.upper()}", oid == correct) for oid in option_ids],
    )
    question.sync_correct_answer()
    question.check_warnings()
    return question


def make_quiz(questions: List[Question], title: str = "Sample Quiz",
              confidence: Optional[int] = 90, source_file: str = "sample.txt") -> Quiz:
    quiz = Quiz(
        title=title,
        description="Sample description",
        questions=questions,
        metadata=QuizMetadata(source_type="text", source_file=source_file, parse_confidence=confidence),
    )
    quiz.refresh_metadata()
    return quiz


def sample_image(filename: str = "diagram.png") -> Image:
    return make_image(png_bytes(), filename, source="upload")


@pytest.fixture
def mixed_quiz() -> Quiz:
    """One question of every exported family, answers marked."""
    select = Question(
        id="q3",
        type="multiple_select",
        text="Pick the primes",
        points=3.0,
        options=[Option("a", "2", True), Option("b", "4"), Option("c", "5", True)],
    )
    select.sync_correct_answer()
    essay = Question(id="q4", type="essay", text="Discuss photosynthesis & respiration", points=10.0)
    short = Question(id="q5", type="short_answer", text="Name the powerhouse <organelle>", points=5.0)
    return make_quiz([
        choice_question("q1", correct="b"),
        choice_question("q2", correct="f", qtype="true_false"),
        select,
        essay,
        short,
    ])


# ============================================================================
# LMS Documents
# ============================================================================

QTI_SAMPLE = """<?xml version="1.0" encoding="UTF-8"?>
<questestinterop xmlns="http://www.imsglobal.org/xsd/ims_qtiasiv1p2">
  <assessment ident="a1" title="Cell Biology Quiz">
    <section ident="root_section">
      <item ident="i1" title="Question 1">
        <itemmetadata><qtimetadata>
          <qtimetadatafield><fieldlabel>question_type</fieldlabel><fieldentry>multiple_choice_question</fieldentry></qtimetadatafield>
          <qtimetadatafield><fieldlabel>points_possible</fieldlabel><fieldentry>2</fieldentry></qtimetadatafield>
        </qtimetadata></itemmetadata>
        <presentation>
          <material><mattext texttype="text/html">&lt;p&gt;What is the powerhouse of the cell?&lt;/p&gt;</mattext></material>
          <response_lid ident="response1" rcardinality="Single">
            <render_choice>
              <response_label ident="a1"><material><mattext>Nucleus</mattext></material></response_label>
              <response_label ident="a2"><material><mattext>Mitochondria</mattext></material></response_label>
            </render_choice>
          </response_lid>
        </presentation>
        <resprocessing>
          <respcondition continue="No">
            <conditionvar><varequal respident="response1">a2</varequal></conditionvar>
            <setvar action="Set" varname="SCORE">100</setvar>
          </respcondition>
        </resprocessing>
      </item>
      <item ident="i2" title="Question 2">
        <itemmetadata><qtimetadata>
          <qtimetadatafield><fieldlabel>question_type</fieldlabel><fieldentry>true_false_question</fieldentry></qtimetadatafield>
        </qtimetadata></itemmetadata>
        <presentation>
          <material><mattext>Cells have walls.</mattext></material>
          <response_lid ident="response1">
            <render_choice>
              <response_label ident="9001"><material><mattext>True</mattext></material></response_label>
              <response_label ident="9002"><material><mattext>False</mattext></material></response_label>
            </render_choice>
          </response_lid>
        </presentation>
      </item>
    </section>
  </assessment>
</questestinterop>
"""

MOODLE_SAMPLE = """<?xml version="1.0" encoding="UTF-8"?>
<quiz>
  <question type="category"><category><text>$course$/Default</text></category></question>
  <question type="multichoice">
    <name><text>Capital</text></name>
    <questiontext format="html"><text><![CDATA[<p>What is the capital of France?</p>]]></text></questiontext>
    <defaultgrade>3</defaultgrade>
    <single>true</single>
    <answer fraction="0"><text>Berlin</text></answer>
    <answer fraction="100"><text>Paris</text></answer>
    <answer fraction="0"><text>Madrid</text></answer>
    <generalfeedback format="html"><text>Paris has been the capital since 987.</text></generalfeedback>
  </question>
  <question type="multichoice">
    <name><text>Primes</text></name>
    <questiontext format="html"><text>Select the primes</text></questiontext>
    <single>false</single>
    <answer fraction="50"><text>2</text></answer>
    <answer fraction="50"><text>3</text></answer>
    <answer fraction="-100"><text>4</text></answer>
  </question>
  <question type="truefalse">
    <name><text>Sky</text></name>
    <questiontext format="html"><text>The sky is green.</text></questiontext>
    <answer fraction="0"><text>true</text></answer>
    <answer fraction="100"><text>false</text></answer>
  </question>
  <question type="matching">
    <name><text>Match</text></name>
    <questiontext format="html"><text>Match the capitals</text></questiontext>
    <subquestion format="html"><text>France</text><answer><text>Paris</text></answer></subquestion>
    <subquestion format="html"><text>Spain</text><answer><text>Madrid</text></answer></subquestion>
  </question>
  <question type="numerical">
    <name><text>Pi</text></name>
    <questiontext format="html"><text>Pi to two decimals?</text></questiontext>
    <answer fraction="100"><text>3.14</text><tolerance>0.01</tolerance></answer>
  </question>
</quiz>
"""

BLACKBOARD_SAMPLE = """<?xml version="1.0" encoding="UTF-8"?>
<questestinterop>
  <assessment title="Blackboard Unit Test">
    <section>
      <item title="Q1">
        <itemmetadata>
          <bbmd_questiontype>Multiple Choice</bbmd_questiontype>
          <qmd_absolutescore_max>4</qmd_absolutescore_max>
        </itemmetadata>
        <presentation>
          <flow>
            <material><mat_extension><mat_formattedtext type="HTML">&lt;p&gt;Which gas do plants absorb?&lt;/p&gt;</mat_formattedtext></mat_extension></material>
            <response_lid ident="response">
              <render_choice>
                <flow_label>
                  <response_label ident="A"><flow_mat><material><mat_extension><mat_formattedtext>Oxygen</mat_formattedtext></mat_extension></material></flow_mat></response_label>
                  <response_label ident="B"><flow_mat><material><mat_extension><mat_formattedtext>Carbon dioxide</mat_formattedtext></mat_extension></material></flow_mat></response_label>
                </flow_label>
              </render_choice>
            </response_lid>
          </flow>
        </presentation>
        <resprocessing>
          <respcondition title="correct">
            <conditionvar><varequal respident="response">B</varequal></conditionvar>
            <setvar variablename="SCORE" action="Set">SCORE.max</setvar>
          </respcondition>
        </resprocessing>
        <itemproc_extension><correctresponse><value>B</value></correctresponse></itemproc_extension>
      </item>
      <item title="Q2">
        <itemmetadata><bbmd_questiontype>Essay</bbmd_questiontype></itemmetadata>
        <presentation><flow><material><mattext>Explain osmosis.</mattext></material></flow></presentation>
      </item>
    </section>
  </assessment>
</questestinterop>
"""


def ims_manifest(href: str, resource_type: str = "imsqti_xmlv1p2") -> bytes:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<manifest identifier="m1" xmlns="http://www.imsglobal.org/xsd/imsccv1p1/imscp_v1p1">
  <resources>
    <resource identifier="r0" type="webcontent" href="index.html"><file href="index.html"/></resource>
    <resource identifier="r1" type="{resource_type}"><file href="{href}"/></resource>
  </resources>
</manifest>
""".encode("utf-8")
