"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

text.py

Plain-text adapter and the heuristic ("demo mode") quiz parser.

Text input is passed through unchanged to whichever parser the caller
chooses: the AI adapter, or the regex heuristic below. The heuristic
recognises:

    Biology Chapter 5 Test          <- title: leading text through Test/Quiz/Exam
    1. What is the powerhouse?      <- question: "N." or "N)"
    A) Nucleus                      <- option: "A."-"D." / "a)"-"d)"
    B) Mitochondria
    3. True or False: ...           <- type inferred from stem keywords
    Answer Key: 1-B, 3-True         <- resolved with the answer-key resolver

A leading YAML front matter block may supply title, description and
answer_key:

    ---
    title: Unit 3 Review
    answer_key: 1-B, 2-A
    ---
    1. ...
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import frontmatter
import yaml

from quizforge.answer_key import parse_answer_key
from quizforge.model import (
    NO_QUESTIONS,
    Option,
    Question,
    Quiz,
    QuizMetadata,
    default_points,
)


logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Imported Quiz"
DEFAULT_DESCRIPTION = "Imported quiz - please review and verify all questions."

# Answer keys in free text are resolved against this many positions
ANSWER_KEY_CAPACITY = 100

ANSWER_KEY_RE = re.compile(r"answer\s*key\s*:?\s*(.+)", re.IGNORECASE)
ANSWER_KEY_LINE_RE = re.compile(r"answer\s*key", re.IGNORECASE)
TITLE_RE = re.compile(r"(.+?)(Test|Quiz|Exam)", re.IGNORECASE)
QUESTION_RE = re.compile(r"^(\d+)[.)]\s*(.+)")
OPTION_RE = re.compile(r"^([A-Da-d])[.)]\s*(.+)")
# "--- name ---" file headers and "--- Page N ---" markers
SEPARATOR_RE = re.compile(r"^---.*---[ \t]*$", re.MULTILINE)

# Checked in order; the first match wins
TYPE_KEYWORDS: List[Tuple[str, re.Pattern]] = [
    ("true_false", re.compile(r"true\s*(/|or)\s*false", re.IGNORECASE)),
    ("short_answer", re.compile(r"short answer|briefly|explain", re.IGNORECASE)),
    ("essay", re.compile(r"essay|describe|discuss", re.IGNORECASE)),
    ("matching", re.compile(r"match", re.IGNORECASE)),
    ("fill_blank", re.compile(r"fill in|blank|_____", re.IGNORECASE)),
]

# Heuristic confidence: complete questions score higher than ones needing review
BASE_CONFIDENCE = 85
COMPLETE_BONUS = 10


# ============================================================================
# Text Adapter
# ============================================================================

def extract_text(data: bytes) -> str:
    """Decode an uploaded .txt payload (UTF-8, BOM tolerated)."""
    return data.decode("utf-8-sig", errors="replace")


def split_front_matter(content: str) -> Tuple[Dict[str, Any], str]:
    """
    Separate optional YAML front matter from the quiz body.

    Returns:
        (metadata, body); metadata is empty when there is no valid block
    """
    try:
        post = frontmatter.loads(content)
    except (yaml.YAMLError, ValueError) as e:
        logger.debug("Ignoring malformed front matter: %s", e)
        return {}, content

    if not isinstance(post.metadata, dict) or not post.metadata:
        return {}, content
    return dict(post.metadata), post.content


# ============================================================================
# Heuristic Parser
# ============================================================================

def infer_question_type(stem: str) -> str:
    for qtype, pattern in TYPE_KEYWORDS:
        if pattern.search(stem):
            return qtype
    return "multiple_choice"


def find_title(content: str) -> str:
    match = TITLE_RE.match(SEPARATOR_RE.sub("", content).lstrip())
    return match.group(0).strip() if match else DEFAULT_TITLE


def _mark_answer(question: Question, answer: Optional[str]) -> None:
    """Mark the key's answer on a freshly parsed question."""
    if not answer:
        return
    if question.type == "true_false":
        if answer in ("TRUE", "FALSE"):
            for option in question.options:
                option.is_correct = option.id == ("t" if answer == "TRUE" else "f")
    elif question.type == "multiple_choice":
        for option in question.options:
            option.is_correct = option.id == answer.lower()


def parse_heuristic(content: str, source_file: str = "", source_type: str = "text") -> Quiz:
    """
    Parse loosely formatted quiz text into a Quiz.

    Args:
        content: Raw quiz text
        source_file: Name recorded in quiz metadata
        source_type: Model source type (text, pdf or docx)

    Returns:
        Quiz; questions that need review carry warnings
    """
    meta, body = split_front_matter(content or "")

    key_text = meta.get("answer_key")
    if not key_text:
        key_match = ANSWER_KEY_RE.search(body)
        key_text = key_match.group(1) if key_match else ""
    answers = parse_answer_key(str(key_text), ANSWER_KEY_CAPACITY) if key_text else []

    questions: List[Question] = []
    current: Optional[Question] = None

    for raw_line in body.split("\n"):
        line = raw_line.strip()
        if not line or ANSWER_KEY_LINE_RE.search(line):
            continue

        question_match = QUESTION_RE.match(line)
        if question_match:
            stem = question_match.group(2)
            qtype = infer_question_type(stem)
            current = Question(
                id=f"q{len(questions) + 1}",
                type=qtype,
                text=stem,
                points=default_points(qtype),
            )
            if qtype == "true_false":
                current.options = [Option("t", "True"), Option("f", "False")]
            questions.append(current)
            continue

        option_match = OPTION_RE.match(line)
        if option_match and current is not None and current.type == "multiple_choice":
            current.options.append(Option(option_match.group(1).lower(), option_match.group(2)))

    for index, question in enumerate(questions):
        _mark_answer(question, answers[index] if index < len(answers) else None)
        question.sync_correct_answer()
        question.check_warnings()
        question.confidence = BASE_CONFIDENCE + (0 if question.warnings else COMPLETE_BONUS)

    quiz = Quiz(
        title=str(meta.get("title") or find_title(body)),
        description=str(meta.get("description") or DEFAULT_DESCRIPTION),
        questions=questions,
        warnings=[] if questions else [NO_QUESTIONS],
        metadata=QuizMetadata(
            source_type=source_type,
            source_file=source_file or "Text Input",
            answer_key_found=any(answers),
        ),
    )
    quiz.refresh_metadata(recompute_confidence=True)

    logger.info("Heuristic parse: %d question(s), answer key %s",
                len(questions), "found" if quiz.metadata.answer_key_found else "not found")
    return quiz
