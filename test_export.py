"""
QTI 1.2 export, IMS manifest and package zip.
"""

import io
import zipfile

from quizforge.adapters.dialects import parse_qti
from quizforge.export import ExportSettings, build_package_zip, export_quiz, package_filename, xml_escape
from quizforge.model import Option, Question
from quizforge.xml_utils import parse_xml

from conftest import choice_question, make_quiz, sample_image


def correct_ids(quiz):
    return [[o.id for o in q.correct_options()] for q in quiz.questions]


# ============================================================================
# Round Trip
# ============================================================================

def test_round_trip_through_qti_adapter(mixed_quiz):
    bundle = export_quiz(mixed_quiz)
    reparsed = parse_qti(bundle.xml, "export.xml").quiz

    assert len(reparsed.questions) == len(mixed_quiz.questions)
    assert [q.type for q in reparsed.questions] == [q.type for q in mixed_quiz.questions]
    assert correct_ids(reparsed) == correct_ids(mixed_quiz)
    assert reparsed.title == mixed_quiz.title
    assert reparsed.description == mixed_quiz.description


def test_round_trip_keeps_text_and_points(mixed_quiz):
    reparsed = parse_qti(export_quiz(mixed_quiz).xml).quiz

    assert [q.text for q in reparsed.questions] == [q.text for q in mixed_quiz.questions]
    assert [q.points for q in reparsed.questions] == [q.points for q in mixed_quiz.questions]


def test_round_trip_of_unanswered_question():
    quiz = make_quiz([choice_question("q1")])
    bundle = export_quiz(quiz)

    assert "<resprocessing" not in bundle.xml
    assert not parse_qti(bundle.xml).quiz.questions[0].has_correct_answer()


# ============================================================================
# Assessment XML
# ============================================================================

def test_assessment_structure(mixed_quiz):
    root = parse_xml(export_quiz(mixed_quiz).xml)

    assert root.tag == "questestinterop"
    assessment = root.find("assessment")
    assert assessment.get("title") == "Sample Quiz"
    assert root.find(".//section").get("ident") == "root_section"
    assert len(root.findall(".//item")) == 5


def test_vendor_types_and_points(mixed_quiz):
    root = parse_xml(export_quiz(mixed_quiz).xml)
    fields = [
        {f.findtext("fieldlabel"): f.findtext("fieldentry") for f in item.iter("qtimetadatafield")}
        for item in root.iter("item")
    ]

    assert [f["question_type"] for f in fields] == [
        "multiple_choice_question",
        "true_false_question",
        "multiple_answers_question",
        "essay_question",
        "short_answer_question",
    ]
    assert [f["points_possible"] for f in fields] == ["2", "2", "3", "10", "5"]


def test_open_response_items_are_not_scored(mixed_quiz):
    root = parse_xml(export_quiz(mixed_quiz).xml)
    essay = root.findall(".//item")[3]

    assert essay.find(".//render_fib") is not None
    assert essay.find("resprocessing") is None


def test_multiple_select_requires_every_correct_option(mixed_quiz):
    root = parse_xml(export_quiz(mixed_quiz).xml)
    select = root.findall(".//item")[2]

    assert select.find(".//response_lid").get("rcardinality") == "Multiple"
    assert [v.text for v in select.find(".//conditionvar/and").iter("varequal")] == ["a", "c"]


def test_text_is_escaped_inside_cdata(mixed_quiz):
    xml = export_quiz(mixed_quiz).xml

    assert "<![CDATA[<p>Discuss photosynthesis &amp; respiration</p>]]>" in xml
    assert "<![CDATA[<p>Name the powerhouse &lt;organelle&gt;</p>]]>" in xml


def test_cdata_terminator_in_text_survives():
    question = Question(id="q1", type="essay", text="Explain ]]> in XML")
    bundle = export_quiz(make_quiz([question]))

    reparsed = parse_qti(bundle.xml).quiz
    assert reparsed.questions[0].text == "Explain ]]> in XML"


def test_xml_escape():
    assert xml_escape("""<a href="x">'&'</a>""") == "&lt;a href=&quot;x&quot;&gt;&apos;&amp;&apos;&lt;/a&gt;"


def test_settings_time_limit_and_attempts():
    quiz = make_quiz([choice_question("q1", correct="a")])
    settings = ExportSettings(title="Final Exam", time_limit=30, attempts_allowed=2)
    root = parse_xml(export_quiz(quiz, settings).xml)

    fields = {
        f.findtext("fieldlabel"): f.findtext("fieldentry")
        for f in root.find("assessment/qtimetadata").iter("qtimetadatafield")
    }
    assert fields == {"qmd_timelimit": "1800", "cc_maxattempts": "2"}
    assert root.find("assessment").get("title") == "Final Exam"


# ============================================================================
# Images, Manifest and Package
# ============================================================================

def test_images_become_assets():
    question = choice_question("q1", correct="a")
    question.images = [sample_image("one.png"), sample_image("two.png")]
    bundle = export_quiz(make_quiz([question]))

    assert [name for name, _ in bundle.assets] == ["image_1.png", "image_2.png"]
    assert bundle.assets[0][1].startswith(b"\x89PNG")
    assert 'src="%24IMS-CC-FILEBASE%24/image_1.png"' in bundle.xml

    manifest = parse_xml(bundle.manifest)
    hrefs = [f.get("href") for f in manifest.iter("file")]
    assert hrefs == [f"{bundle.assessment_id}.xml", "image_1.png", "image_2.png"]
    assert manifest.find(".//resource").get("type") == "imsqti_xmlv1p2"


def test_package_zip_contents():
    question = choice_question("q1", correct="a")
    question.images = [sample_image()]
    quiz = make_quiz([question])

    with zipfile.ZipFile(io.BytesIO(build_package_zip(quiz))) as zf:
        names = zf.namelist()

    assert names == ["imsmanifest.xml", f"assessment_{quiz.id}.xml", "image_1.png"]


def test_package_filename():
    assert package_filename("Unit 3: Cells") == "Unit_3__Cells_quiz.zip"
    assert package_filename("Biology-101 Final") == "Biology_101_Final_quiz.zip"


def test_export_does_not_modify_quiz():
    question = choice_question("q1", correct="a")
    question.options.append(Option("e", "Extra"))
    quiz = make_quiz([question])
    before = quiz.to_dict()

    export_quiz(quiz)

    assert quiz.to_dict() == before
