"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

pipeline.py

Session/workflow state: which files were added, what each one yielded,
and the path from there to a single reviewed quiz.

Flow:
    add_files()   validate, then extract every file concurrently
    process()     heuristic (or AI) parse of the combined text, merged with
                  any LMS imports
    generate()    AI-authored quiz from the combined text
    reset()       discard everything, including results still in flight

Extraction fans out with asyncio.gather; each file is handled by a worker
thread and produces its own FileContent. Results are kept in upload order,
not completion order. reset() bumps an epoch counter; a batch that finishes
under an older epoch is discarded instead of applied.

The adapters, merge and export stay pure functions of their inputs; only
this module holds state.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from quizforge import detect
from quizforge.adapters.ai import AIClient, GenerationConfig
from quizforge.adapters.dialects import DIALECTS
from quizforge.adapters.docx import extract_docx
from quizforge.adapters.package import parse_package
from quizforge.adapters.pdf import extract_pdf
from quizforge.adapters.tagged_xml import parse_document
from quizforge.adapters.text import extract_text, parse_heuristic
from quizforge.errors import InputRejectedError
from quizforge.merge import merge_quizzes
from quizforge.model import Image, Quiz
from quizforge.xml_utils import decode_xml_bytes


logger = logging.getLogger(__name__)

INVALID_TYPE_MESSAGE = "Please upload PDF, Word (.docx), text, QTI (.xml), or LMS package (.zip) files."
DUPLICATE_MESSAGE = "These files have already been added."

# Model source_type for each extracted-text format
_TEXT_SOURCE_TYPES = {detect.PDF: "pdf", detect.DOCX: "docx", detect.TEXT: "text"}


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class UploadedFile:
    name: str
    data: bytes
    mime_type: Optional[str] = None


@dataclass
class FileContent:
    """
    What one file yielded.

    LMS files carry a quiz and no text; everything else carries text (and,
    for DOCX, images).
    """
    name: str
    file_type: str
    text: str = ""
    images: List[Image] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    quiz: Optional[Quiz] = None
    dropped_items: int = 0

    @property
    def is_lms(self) -> bool:
        return self.quiz is not None


UploadLike = Union[UploadedFile, Tuple[str, bytes], Tuple[str, bytes, Optional[str]]]


def _as_upload(item: UploadLike) -> UploadedFile:
    if isinstance(item, UploadedFile):
        return item
    return UploadedFile(*item)


def _import_pypdf() -> Any:
    return importlib.import_module("pypdf")


# ============================================================================
# Per-file Extraction
# ============================================================================

def _text_content(upload: UploadedFile, file_type: str, text: str,
                  warnings: Optional[List[str]] = None) -> FileContent:
    return FileContent(name=upload.name, file_type=file_type, text=text, warnings=list(warnings or []))


def extract_upload(
    upload: UploadedFile,
    pdf_module: Any = None,
    page_start: Optional[int] = None,
    page_end: Optional[int] = None,
) -> FileContent:
    """
    Run the adapter for one accepted file.

    An LMS XML file that is unrecognised, or that yields no questions, is
    re-read as plain text. A package that yields no questions contributes
    only a warning.
    """
    fmt = detect.detect_by_filename(upload.name, upload.mime_type)

    if fmt == detect.PDF:
        result = extract_pdf(upload.data, upload.name, page_start, page_end, pdf_module=pdf_module)
        return _text_content(upload, detect.PDF, result.text, result.warnings)

    if fmt == detect.DOCX:
        result = extract_docx(upload.data, upload.name)
        content = _text_content(upload, detect.DOCX, result.text, result.warnings)
        content.images = result.images
        return content

    if fmt == detect.XML:
        lms_format = detect.detect_lms_format(upload.data)
        if lms_format in DIALECTS:
            parsed = parse_document(upload.data, DIALECTS[lms_format], upload.name)
            if parsed.quiz.questions:
                return FileContent(
                    name=upload.name,
                    file_type=lms_format,
                    quiz=parsed.quiz,
                    dropped_items=parsed.dropped_items,
                )
            logger.info("%s parsed to no questions; reading it as text", upload.name)
        return _text_content(upload, detect.TEXT, decode_xml_bytes(upload.data))

    if fmt == detect.ZIP:
        parsed = parse_package(upload.data, upload.name)
        if parsed.quiz.questions:
            return FileContent(
                name=upload.name,
                file_type=detect.IMS_PACKAGE,
                quiz=parsed.quiz,
                dropped_items=parsed.dropped_items,
            )
        return _text_content(upload, detect.IMS_PACKAGE, "",
                             [f"Could not parse LMS package: {upload.name}"])

    return _text_content(upload, detect.TEXT, extract_text(upload.data))


# ============================================================================
# Session
# ============================================================================

class Session:
    """
    One user's upload-to-export workflow.

    Args:
        pdf_importer: Loads the PDF library; called at most once per session
    """

    def __init__(self, pdf_importer: Callable[[], Any] = _import_pypdf):
        self.contents: List[FileContent] = []
        self.epoch = 0
        self._uploads: Dict[str, UploadedFile] = {}
        self._pdf_importer = pdf_importer
        self._pdf_loader: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def file_names(self) -> List[str]:
        return [content.name for content in self.contents]

    @property
    def combined_text(self) -> str:
        """Non-LMS texts in upload order as '--- name ---' blocks."""
        return "\n\n".join(
            f"--- {content.name} ---\n{content.text}"
            for content in self.contents
            if not content.is_lms and content.text
        )

    @property
    def images(self) -> List[Image]:
        return [image for content in self.contents for image in content.images]

    @property
    def imported_quizzes(self) -> List[Quiz]:
        return [content.quiz for content in self.contents if content.quiz is not None]

    @property
    def warnings(self) -> List[str]:
        return [warning for content in self.contents for warning in content.warnings]

    @property
    def source_type(self) -> str:
        """Model source type of the first text-bearing file."""
        for content in self.contents:
            if not content.is_lms and content.text:
                return _TEXT_SOURCE_TYPES.get(content.file_type, "text")
        return "text"

    @property
    def source_file(self) -> str:
        return self.contents[0].name if self.contents else ""

    # ------------------------------------------------------------------
    # Upload handling
    # ------------------------------------------------------------------

    def validate(self, uploads: Iterable[UploadLike]) -> List[UploadedFile]:
        """
        Filter a batch down to accepted, not-yet-added files.

        Raises:
            InputRejectedError: Nothing in the batch can be added
        """
        batch = [_as_upload(item) for item in uploads]

        accepted: List[UploadedFile] = []
        rejected: List[str] = []
        for upload in batch:
            if detect.detect_by_filename(upload.name, upload.mime_type) is None:
                rejected.append(upload.name)
            else:
                accepted.append(upload)

        if rejected:
            logger.warning("Rejected unsupported file(s): %s", ", ".join(rejected))
        if not accepted:
            raise InputRejectedError(INVALID_TYPE_MESSAGE, rejected)

        seen = set(self.file_names)
        fresh: List[UploadedFile] = []
        for upload in accepted:
            if upload.name in seen:
                logger.info("Skipping %s: already added", upload.name)
                continue
            seen.add(upload.name)
            fresh.append(upload)

        if not fresh:
            raise InputRejectedError(DUPLICATE_MESSAGE, [u.name for u in accepted])
        return fresh

    async def pdf_module(self) -> Any:
        """The PDF library, loaded once; concurrent first callers share one load."""
        if self._pdf_loader is None:
            self._pdf_loader = asyncio.ensure_future(asyncio.to_thread(self._pdf_importer))
        try:
            return await self._pdf_loader
        except Exception:
            # A failed load may be retried by a later batch
            self._pdf_loader = None
            raise

    async def _extract(self, upload: UploadedFile, page_start: Optional[int] = None,
                       page_end: Optional[int] = None) -> FileContent:
        pdf_module = None
        if detect.detect_by_filename(upload.name, upload.mime_type) == detect.PDF:
            try:
                pdf_module = await self.pdf_module()
            except Exception as e:
                logger.warning("Could not load the PDF library: %s", e)
                return _text_content(upload, detect.PDF, "", [f"PDF support is unavailable: {e}"])
        return await asyncio.to_thread(extract_upload, upload, pdf_module, page_start, page_end)

    async def add_files(
        self,
        uploads: Iterable[UploadLike],
        page_start: Optional[int] = None,
        page_end: Optional[int] = None,
    ) -> List[FileContent]:
        """
        Validate and extract a batch of files.

        Returns:
            The new FileContent entries in upload order; empty if the
            session was reset while they were being extracted

        Raises:
            InputRejectedError: Nothing in the batch can be added
        """
        fresh = self.validate(uploads)
        epoch = self.epoch

        results = await asyncio.gather(*(self._extract(u, page_start, page_end) for u in fresh))

        if epoch != self.epoch:
            logger.info("Discarding %d result(s) that finished after a reset", len(results))
            return []

        self.contents.extend(results)
        self._uploads.update((upload.name, upload) for upload in fresh)
        for content in results:
            logger.info("Added %s as %s", content.name, content.file_type)
        return list(results)

    def remove_file(self, name: str) -> None:
        """Drop a file's extracted content and any quiz imported from it."""
        self.contents = [content for content in self.contents if content.name != name]
        self._uploads.pop(name, None)

    def reset(self) -> None:
        self.contents = []
        self._uploads = {}
        self.epoch += 1

    # ------------------------------------------------------------------
    # Producing a quiz
    # ------------------------------------------------------------------

    async def source_text(self, page_start: Optional[int] = None,
                          page_end: Optional[int] = None) -> str:
        """
        The combined text, with PDFs re-extracted over a page range when
        one is given.
        """
        if not (page_start or page_end):
            return self.combined_text

        blocks = []
        for content in self.contents:
            if content.is_lms:
                continue
            text = content.text
            if content.file_type == detect.PDF and content.name in self._uploads:
                ranged = await self._extract(self._uploads[content.name], page_start, page_end)
                text = ranged.text
            if text:
                blocks.append(f"--- {content.name} ---\n{text}")
        return "\n\n".join(blocks)

    async def process(self, ai_client: Optional[AIClient] = None) -> Optional[Quiz]:
        """
        Parse the combined text (heuristically, or with the AI client when
        one is given) and merge it with the LMS imports.

        Returns:
            The merged quiz, or None when the session holds nothing usable
        """
        epoch = self.epoch
        text = self.combined_text
        imported = self.imported_quizzes

        if not text.strip():
            return merge_quizzes(None, imported)

        if ai_client is not None:
            primary = await ai_client.parse_quiz(text, self.images, self.source_type, self.source_file)
        else:
            primary = parse_heuristic(text, self.source_file, self.source_type)

        if epoch != self.epoch:
            logger.info("Discarding a parse that finished after a reset")
            return None

        return merge_quizzes(primary, imported)

    async def generate(
        self,
        ai_client: AIClient,
        generation: Optional[GenerationConfig] = None,
        page_start: Optional[int] = None,
        page_end: Optional[int] = None,
    ) -> Optional[Quiz]:
        """Author a new quiz from the session's source material."""
        epoch = self.epoch
        text = await self.source_text(page_start, page_end)
        quiz = await ai_client.generate_quiz(text, generation, self.source_type, self.source_file)

        if epoch != self.epoch:
            logger.info("Discarding a generated quiz that finished after a reset")
            return None
        return quiz


async def ingest(uploads: Sequence[UploadLike], page_start: Optional[int] = None,
                 page_end: Optional[int] = None) -> Session:
    """Convenience: a new session holding the given files."""
    session = Session()
    await session.add_files(uploads, page_start, page_end)
    return session
