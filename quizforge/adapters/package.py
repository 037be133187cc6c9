"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

package.py

IMS content package (.zip) adapter.

Opens the archive in memory, finds the assessment document named by
imsmanifest.xml (or a top-level XML file when there is no manifest), and
hands it to the matching tagged-XML dialect with the archive kept open so
question images can be resolved from it.
"""

from __future__ import annotations

import logging

from quizforge.adapters.dialects import DIALECTS
from quizforge.adapters.tagged_xml import ParseResult, parse_document
from quizforge.archive import ArchiveError, open_archive
from quizforge.detect import detect_zip_format
from quizforge.model import Quiz, QuizMetadata, degraded_quiz


logger = logging.getLogger(__name__)

UNRECOGNIZED_PACKAGE = "Could not find a QTI, Moodle or Blackboard assessment in the package"


def parse_package(data: bytes, source_file: str = "") -> ParseResult:
    """
    Parse an IMS package.

    Returns:
        ParseResult from the dialect adapter, or a degraded quiz when the
        archive is unreadable or holds no recognisable assessment. Never
        raises.
    """
    source_file = source_file or "Package Import"

    try:
        with open_archive(data) as archive:
            detected = detect_zip_format(archive)
            if detected is None:
                logger.warning("%s: %s", source_file, UNRECOGNIZED_PACKAGE)
                return ParseResult(quiz=Quiz(
                    title="Import Error",
                    description=f"Failed to parse package file: {UNRECOGNIZED_PACKAGE}",
                    warnings=[f"Import failed: {UNRECOGNIZED_PACKAGE}"],
                    metadata=QuizMetadata(source_type="qti", source_file=source_file, parse_confidence=0),
                ))

            logger.debug("%s: %s assessment at %s", source_file, detected.format, detected.member)
            return parse_document(detected.content, DIALECTS[detected.format], source_file, archive)

    except ArchiveError as e:
        logger.warning("Could not open package %s: %s", source_file, e)
        return ParseResult(quiz=degraded_quiz("qti", source_file, "package", e))
