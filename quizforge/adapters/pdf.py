"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

pdf.py

PDF adapter: positioned text runs in, reading-order plain text out.

pypdf reports each text run with its transformation matrices. Runs are
placed on the page (origin bottom-left, y grows upward), sorted top to
bottom and then left to right, and joined:

- runs within 5 units vertically count as one line and sort by x
- a vertical jump of more than 10 units between consecutive runs starts a
  new line; otherwise runs are joined with a single space

Each page is followed by a "--- Page N ---" marker. Scanned documents
produce little or no text; that is reported as a warning (no OCR).
"""

from __future__ import annotations

import functools
import io
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional


logger = logging.getLogger(__name__)

SAME_LINE_TOLERANCE = 5
NEW_LINE_THRESHOLD = 10
MIN_TEXT_LENGTH = 100

SCANNED_WARNING = (
    "Very little text could be extracted. The PDF may be scanned or image-only; "
    "OCR is not supported."
)
EXTRACT_FAILED = "Failed to extract text from PDF. The file may be scanned or corrupted."


@dataclass
class TextRun:
    """One positioned run of text on a page."""
    text: str
    x: float
    y: float


@dataclass
class PdfExtraction:
    text: str = ""
    page_count: int = 0
    pages_read: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def page_marker(page_number: int) -> str:
    return f"\n\n--- Page {page_number} ---\n\n"


def _compare_runs(a: TextRun, b: TextRun) -> float:
    y_diff = b.y - a.y
    if abs(y_diff) > SAME_LINE_TOLERANCE:
        return y_diff
    return a.x - b.x


def reconstruct_page_text(runs: List[TextRun]) -> str:
    """
    Join positioned runs into reading-order text.

    Example:
        >>> reconstruct_page_text([TextRun("world", 50, 700), TextRun("Hello", 10, 701),
        ...                        TextRun("Next", 10, 680)])
        'Hello world\\nNext'
    """
    ordered = sorted(runs, key=functools.cmp_to_key(_compare_runs))

    page_text = ""
    last_y: Optional[int] = None

    for run in ordered:
        y = round(run.y)
        if last_y is not None and abs(y - last_y) > NEW_LINE_THRESHOLD:
            page_text += "\n"
        elif last_y is not None and page_text and not page_text.endswith((" ", "\n")):
            page_text += " "
        page_text += run.text
        last_y = y

    return page_text


def collect_runs(page: Any) -> List[TextRun]:
    """Positioned runs of one pypdf page, via the extract_text visitor hook."""
    runs: List[TextRun] = []

    def visitor(text, cm, tm, font_dict, font_size):
        text = text.strip("\n")
        if not text.strip():
            return
        x = tm[4] * cm[0] + tm[5] * cm[2] + cm[4]
        y = tm[4] * cm[1] + tm[5] * cm[3] + cm[5]
        runs.append(TextRun(text, x, y))

    page.extract_text(visitor_text=visitor)
    return runs


def resolve_page_range(page_count: int, page_start: Optional[int] = None,
                       page_end: Optional[int] = None) -> range:
    """Inclusive 1-based page range clamped to the document; defaults to all pages."""
    start = min(page_start, page_count) if page_start and page_start > 0 else 1
    end = min(page_end, page_count) if page_end and page_end > 0 else page_count
    return range(start, end + 1)


def meaningful_length(text: str) -> int:
    """Characters of real content: page markers and whitespace do not count."""
    lines = [line for line in text.splitlines() if not line.startswith("--- Page ")]
    return sum(len(line.replace(" ", "").replace("\t", "")) for line in lines)


def extract_pdf(
    data: bytes,
    source_file: str = "",
    page_start: Optional[int] = None,
    page_end: Optional[int] = None,
    pdf_module: Any = None,
) -> PdfExtraction:
    """
    Extract reading-order text from a PDF payload.

    Args:
        data: PDF bytes
        source_file: Name used in log lines
        page_start, page_end: Optional inclusive 1-based page range
        pdf_module: The loaded pypdf module (imported here when not given)

    Returns:
        PdfExtraction; never raises
    """
    result = PdfExtraction()

    try:
        if pdf_module is None:
            import pypdf as pdf_module

        reader = pdf_module.PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            reader.decrypt("")

        result.page_count = len(reader.pages)
        full_text = ""

        for page_number in resolve_page_range(result.page_count, page_start, page_end):
            runs = collect_runs(reader.pages[page_number - 1])
            full_text += reconstruct_page_text(runs) + page_marker(page_number)
            result.pages_read.append(page_number)

        result.text = full_text.strip()

    except Exception as e:
        logger.warning("Error extracting text from PDF %s: %s", source_file, e)
        result.warnings.append(EXTRACT_FAILED)
        return result

    if meaningful_length(result.text) < MIN_TEXT_LENGTH:
        result.warnings.append(SCANNED_WARNING)

    logger.info(
        "Extracted %d characters from %d of %d page(s) of %s",
        len(result.text), len(result.pages_read), result.page_count, source_file or "PDF",
    )
    return result
