"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

merge.py

Combine a primary parsed quiz with quizzes imported from LMS files.

Rules, in order:
1. Nothing to merge: None
2. No primary and exactly one import: that import, unchanged (same object)
3. Otherwise the sources [primary, *imports] are concatenated in that order.
   Every question id is reassigned to q1..qN, warnings are concatenated,
   parse confidence is the rounded mean of the sources' confidences
   (missing counts as 80) and answer_key_found is true if any source found
   one. With more than one source the title becomes "Combined Quiz".
"""

from __future__ import annotations

import copy
import logging
from typing import List, Optional, Sequence

from quizforge.model import Quiz, QuizMetadata, mean_confidence


logger = logging.getLogger(__name__)

COMBINED_TITLE = "Combined Quiz"


def merge_quizzes(primary: Optional[Quiz], imported: Sequence[Quiz]) -> Optional[Quiz]:
    """
    Merge zero-or-one primary quiz with zero-or-more imported quizzes.

    Sources are not modified; renumbered questions are copies.

    Returns:
        The merged Quiz, the single import itself, or None
    """
    imported = list(imported)

    if primary is None and not imported:
        return None

    if primary is None and len(imported) == 1:
        return imported[0]

    sources: List[Quiz] = ([primary] if primary is not None else []) + imported
    base = sources[0]
    combined = len(sources) > 1

    questions = []
    for source in sources:
        for question in source.questions:
            renumbered = copy.deepcopy(question)
            renumbered.id = f"q{len(questions) + 1}"
            questions.append(renumbered)

    warnings = [warning for source in sources for warning in source.warnings]

    merged = Quiz(
        title=COMBINED_TITLE if combined else base.title,
        description=f"Combined from {len(sources)} sources" if combined else base.description,
        questions=questions,
        warnings=warnings,
        metadata=QuizMetadata(
            source_type="merged" if combined else base.metadata.source_type,
            source_file=", ".join(s.metadata.source_file for s in sources if s.metadata.source_file),
            parse_confidence=mean_confidence([s.metadata.parse_confidence for s in sources]),
            answer_key_found=any(s.metadata.answer_key_found for s in sources),
            source_count=len(sources),
        ),
    )
    merged.refresh_metadata()

    logger.info("Merged %d source(s) into %d question(s)", len(sources), len(questions))
    return merged
