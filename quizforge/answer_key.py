"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

answer_key.py

Parse free-text answer keys and apply them to a quiz.

Accepted shapes include:
    1-B, 2-A, 3-C
    1. b  2) True  3: F
    Answer Key: B A C TRUE
    B, A, C

Two strategies run in strict priority order:
1. Numbered pairs ("<n><sep><answer>"). If any pair matches, this result is
   final and the bare-sequence strategy never runs.
2. Bare sequence: letters A-D and true/false tokens assigned to questions in
   order, starting with the first.

Usage:
    from quizforge.answer_key import parse_answer_key, apply_answer_key

    answers = parse_answer_key("1-B, 2-A, 3-C", len(quiz.questions))
    apply_answer_key(quiz, answers)
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from quizforge.model import NO_CORRECT_ANSWER, Quiz


NUMBERED_RE = re.compile(r"(\d+)\s*[.\-):\s]\s*(TRUE|FALSE|[A-Z])", re.IGNORECASE)
ANSWER_KEY_LABEL_RE = re.compile(r"ANSWER\s*KEY\s*:?", re.IGNORECASE)
BARE_TOKEN_RE = re.compile(r"^(?:[A-D]|TRUE|FALSE|T|F)$")

_TF_EXPANSION = {"T": "TRUE", "F": "FALSE"}


def _normalize_token(token: str) -> str:
    token = token.upper()
    return _TF_EXPANSION.get(token, token)


def _to_sparse_list(answers: Dict[int, str]) -> List[Optional[str]]:
    """Positions without an answer are None; the list ends at the last answer."""
    if not answers:
        return []
    results: List[Optional[str]] = [None] * (max(answers) + 1)
    for index, answer in answers.items():
        results[index] = answer
    return results


def parse_numbered(text: str, question_count: int) -> Dict[int, str]:
    """Strategy 1: numbered pairs; out-of-range numbers are dropped."""
    answers: Dict[int, str] = {}
    for match in NUMBERED_RE.finditer(text):
        index = int(match.group(1)) - 1
        if 0 <= index < question_count:
            answers[index] = _normalize_token(match.group(2))
    return answers


def parse_bare_sequence(text: str, question_count: int) -> Dict[int, str]:
    """Strategy 2: an unnumbered run of answers, assigned from question 1."""
    clean = ANSWER_KEY_LABEL_RE.sub("", text.upper())
    clean = re.sub(r"[^A-Z\s,]", " ", clean).strip()

    tokens = [part for part in re.split(r"[\s,]+", clean) if part]
    valid = [token for token in tokens if BARE_TOKEN_RE.match(token)]

    return {
        index: _normalize_token(token)
        for index, token in enumerate(valid[:question_count])
    }


def parse_answer_key(raw: str, question_count: int) -> List[Optional[str]]:
    """
    Parse an answer key into answers indexed by question position (0-based).

    Args:
        raw: Free-text answer key
        question_count: Number of questions in the quiz; numbered entries
            outside 1..question_count are silently dropped

    Returns:
        Sparse list of upper-case tokens ("A".."Z", "TRUE", "FALSE"), None
        where a position has no answer

    Example:
        >>> parse_answer_key("1-B, 99-C", 3)
        ['B']
        >>> parse_answer_key("B, A, C", 3)
        ['B', 'A', 'C']
    """
    text = (raw or "").strip()
    if not text:
        return []

    # Any numbered match decides the strategy, even if every match is out of range
    if NUMBERED_RE.search(text):
        return _to_sparse_list(parse_numbered(text, question_count))

    return _to_sparse_list(parse_bare_sequence(text, question_count))


def apply_answer_key(quiz: Quiz, answers: Sequence[Optional[str]]) -> int:
    """
    Mark correct options from parsed answers, in place.

    True/false questions take the boolean as their "t" or "f" option.
    Multiple choice/select questions take the answer as an option id. When
    the target option does not exist the question is left untouched. A
    successful match clears the "No correct answer detected" warning; a
    failed match never adds one.

    Returns:
        Number of questions whose answer was applied
    """
    applied = 0

    for index, question in enumerate(quiz.questions):
        answer = answers[index] if index < len(answers) else None
        if not answer:
            continue

        if question.type == "true_false":
            answer_id = "t" if answer in ("TRUE", "T") else "f"
            if not any(option.id == answer_id for option in question.options):
                continue
            for option in question.options:
                option.is_correct = option.id == answer_id
            question.correct_answer = answer_id

        elif question.type in ("multiple_choice", "multiple_select"):
            answer_id = answer.lower()
            if not any(option.id == answer_id for option in question.options):
                continue
            for option in question.options:
                option.is_correct = option.id == answer_id
            question.correct_answer = answer_id

        else:
            continue

        question.warnings = [w for w in question.warnings if w != NO_CORRECT_ANSWER]
        applied += 1

    return applied
