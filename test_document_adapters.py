"""
Document adapters: DOCX, PDF and plain text with the heuristic parser.
"""

from types import SimpleNamespace

from quizforge.adapters.docx import document_xml_to_text, extract_docx
from quizforge.adapters.pdf import (
    EXTRACT_FAILED,
    SCANNED_WARNING,
    TextRun,
    extract_pdf,
    reconstruct_page_text,
    resolve_page_range,
)
from quizforge.adapters.text import DEFAULT_TITLE, extract_text, parse_heuristic
from quizforge.model import NO_CORRECT_ANSWER, NO_QUESTIONS

from conftest import EMF_BYTES, build_docx, png_bytes


# ============================================================================
# DOCX
# ============================================================================

def test_docx_text_paragraphs_and_entities():
    xml = (
        '<w:body><w:p w:rsidR="1"><w:pPr><w:pStyle w:val="Title"/></w:pPr>'
        "<w:r><w:t>Quiz &amp; Review</w:t></w:r></w:p>"
        "<w:p><w:r><w:t>1. A</w:t><w:tab/><w:t>&lt;B&gt;</w:t><w:br/><w:t>&amp;lt;C</w:t></w:r></w:p></w:body>"
    )
    assert document_xml_to_text(xml) == "Quiz & Review\n1. A\t<B>\n&lt;C"


def test_docx_emf_media_never_reaches_output():
    data = build_docx(
        ["1. Which shape is shown?", "A) Circle", "B) Square"],
        media={"image1.png": png_bytes(), "image2.emf": EMF_BYTES, "image3.wmf": b"\xd7\xcd\xc6\x9a" + b"\x00" * 20},
    )

    result = extract_docx(data, "shapes.docx")

    assert [img.filename for img in result.images] == ["image1.png"]
    assert all(img.mime_type != "image/emf" for img in result.images)
    assert result.images[0].source == "docx"
    assert "1. Which shape is shown?" in result.text


def test_docx_without_document_part():
    result = extract_docx(build_docx([]).replace(b"word/document.xml", b"word/other000.xml"), "odd.docx")
    assert result.text == ""
    assert result.warnings


def test_unreadable_docx():
    result = extract_docx(b"not a zip", "broken.docx")
    assert result.text == ""
    assert result.images == []
    assert "broken.docx" in result.warnings[0]


# ============================================================================
# PDF
# ============================================================================

def test_reconstruct_orders_runs_top_to_bottom_then_left_to_right():
    runs = [
        TextRun("B) Square", 10, 660),
        TextRun("world", 50, 700),
        TextRun("Hello", 10, 702),
        TextRun("A) Circle", 10, 680),
    ]
    assert reconstruct_page_text(runs) == "Hello world\nA) Circle\nB) Square"


def test_reconstruct_small_vertical_gap_joins_with_space():
    runs = [TextRun("superscript", 10, 700), TextRun("base", 10, 692)]
    assert reconstruct_page_text(runs) == "superscript base"


def test_reconstruct_empty_page():
    assert reconstruct_page_text([]) == ""


def test_resolve_page_range():
    assert list(resolve_page_range(5)) == [1, 2, 3, 4, 5]
    assert list(resolve_page_range(5, 2, 3)) == [2, 3]
    assert list(resolve_page_range(5, 4, 99)) == [4, 5]
    assert list(resolve_page_range(5, None, 2)) == [1, 2]


class FakePage:
    def __init__(self, runs):
        self.runs = runs

    def extract_text(self, visitor_text=None):
        identity = [1, 0, 0, 1, 0, 0]
        for text, x, y in self.runs:
            visitor_text(text, identity, [1, 0, 0, 1, x, y], {}, 12)
        return ""


def fake_pdf_module(pages):
    class FakeReader:
        def __init__(self, stream):
            self.pages = pages
            self.is_encrypted = False

    return SimpleNamespace(PdfReader=FakeReader)


def test_extract_pdf_with_page_markers_and_range():
    line = "This sentence is long enough to count as real extracted text on a page. " * 2
    pages = [
        FakePage([("Page one " + line, 10, 700)]),
        FakePage([("Page two " + line, 10, 700), ("\n", 10, 690)]),
        FakePage([("Page three " + line, 10, 700)]),
    ]

    result = extract_pdf(b"%PDF", "notes.pdf", page_start=2, page_end=3, pdf_module=fake_pdf_module(pages))

    assert result.page_count == 3
    assert result.pages_read == [2, 3]
    assert result.text.startswith("Page two")
    assert "--- Page 2 ---" in result.text
    assert result.text.endswith("--- Page 3 ---")
    assert "Page one" not in result.text
    assert result.warnings == []


def test_extract_pdf_warns_when_little_text():
    result = extract_pdf(b"%PDF", "scan.pdf", pdf_module=fake_pdf_module([FakePage([("12", 10, 10)])]))
    assert result.warnings == [SCANNED_WARNING]


def test_extract_pdf_never_raises():
    class Broken:
        def PdfReader(self, stream):
            raise ValueError("EOF marker not found")

    result = extract_pdf(b"garbage", "bad.pdf", pdf_module=Broken())
    assert result.text == ""
    assert result.warnings == [EXTRACT_FAILED]


# ============================================================================
# Text and Heuristic Parser
# ============================================================================

SAMPLE_TEXT = """Biology Chapter 5 Test

1. What is the powerhouse of the cell?
A) Nucleus
B) Mitochondria
C) Ribosome
D) Golgi

2. True or False: Plant cells have walls.

3. Briefly explain osmosis.

4. Describe the stages of mitosis.

Answer Key: 1-B, 2-True
"""


def test_extract_text_strips_bom():
    assert extract_text("\ufeff1. Hi".encode("utf-8")) == "1. Hi"


def test_heuristic_parse():
    quiz = parse_heuristic(SAMPLE_TEXT, "bio.txt")

    assert quiz.title == "Biology Chapter 5 Test"
    assert [q.type for q in quiz.questions] == ["multiple_choice", "true_false", "short_answer", "essay"]
    assert [q.points for q in quiz.questions] == [2.0, 2.0, 5.0, 10.0]
    assert quiz.metadata.answer_key_found is True
    assert quiz.metadata.source_file == "bio.txt"

    mc, tf = quiz.questions[:2]
    assert [o.id for o in mc.options] == ["a", "b", "c", "d"]
    assert mc.correct_answer == "b"
    assert [(o.id, o.is_correct) for o in tf.options] == [("t", True), ("f", False)]
    assert mc.warnings == [] and tf.warnings == []


def test_heuristic_flags_unanswered_questions():
    quiz = parse_heuristic("Unit Quiz\n1. Pick one\na) yes\nb) no\n")

    assert NO_CORRECT_ANSWER in quiz.questions[0].warnings
    assert quiz.metadata.answer_key_found is False
    assert quiz.metadata.parse_confidence == 85


def test_heuristic_front_matter():
    text = "---\ntitle: Unit 3 Review\nanswer_key: 1-A\n---\n1. First?\nA. One\nB. Two\n"
    quiz = parse_heuristic(text)

    assert quiz.title == "Unit 3 Review"
    assert quiz.questions[0].correct_answer == "a"


def test_heuristic_ignores_file_headers_in_title():
    quiz = parse_heuristic("--- notes.txt ---\nMidterm Exam review\n1. Q?\n")
    assert quiz.title == "Midterm Exam"


def test_heuristic_no_questions():
    quiz = parse_heuristic("Just some prose without numbering.")

    assert quiz.questions == []
    assert quiz.warnings == [NO_QUESTIONS]
    assert quiz.title == DEFAULT_TITLE
    assert quiz.metadata.parse_confidence == 0
