"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

model.py

The normalized quiz model every adapter reads and writes.

A Quiz owns an ordered list of Questions; a Question owns its Options and
Images. Field names are snake_case in Python and camelCase in the JSON
shape produced by ``to_dict()`` (the same shape the AI service returns).

Warning invariant:
    For multiple_choice / multiple_select / true_false questions, having no
    option marked correct means the question carries the warning
    "No correct answer detected". ``Question.check_warnings()`` restores the
    invariant and is called after every editing-surface mutation.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================================
# Constants
# ============================================================================

QUESTION_TYPES = (
    "multiple_choice",
    "multiple_select",
    "true_false",
    "short_answer",
    "essay",
    "matching",
    "ordering",
    "fill_blank",
    "numerical",
)

# Types whose correctness lives on Option.is_correct
CHOICE_TYPES = frozenset({"multiple_choice", "multiple_select", "true_false"})

# Types that are answered in a free-text box and never auto-graded on export
OPEN_RESPONSE_TYPES = frozenset({"short_answer", "essay", "fill_blank"})

SOURCE_TYPES = ("text", "pdf", "docx", "qti", "moodle", "blackboard", "merged")

IMAGE_SOURCES = ("docx", "qti", "upload")

NO_CORRECT_ANSWER = "No correct answer detected"
FEWER_THAN_TWO_OPTIONS = "Fewer than 2 answer options"
NO_QUESTIONS = "No questions detected"

# Confidence assumed for a source or question that did not report one
DEFAULT_CONFIDENCE = 80

_DEFAULT_POINTS = {
    "essay": 10.0,
    "short_answer": 5.0,
}


def generate_id() -> str:
    """Generate an opaque identifier for quizzes, images and new questions."""
    return uuid.uuid4().hex[:9]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_points(question_type: str) -> float:
    """Point value for a freshly detected question of the given type."""
    return _DEFAULT_POINTS.get(question_type, 2.0)


def mean_confidence(values: List[Optional[int]]) -> int:
    """Unweighted mean rounded half up; missing values count as DEFAULT_CONFIDENCE."""
    if not values:
        return 0
    filled = [DEFAULT_CONFIDENCE if v is None else v for v in values]
    return int(math.floor(sum(filled) / len(filled) + 0.5))


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Option:
    """One answer choice of a choice-family question."""
    id: str
    text: str
    is_correct: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "isCorrect": self.is_correct}


@dataclass
class Image:
    """
    An image owned by a question.

    ``data_url`` is self-contained (``data:<mime_type>;base64,...``) so no
    external file references are needed while the quiz is in memory.
    """
    id: str
    filename: str
    data_url: str
    mime_type: str
    size: int = 0
    width: int = 0
    height: int = 0
    source: str = "upload"  # docx, qti, upload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "dataUrl": self.data_url,
            "mimeType": self.mime_type,
            "size": self.size,
            "width": self.width,
            "height": self.height,
            "source": self.source,
        }


@dataclass
class Question:
    """A single question; ids are unique within the owning quiz."""
    id: str
    type: str
    text: str
    points: float = 1.0
    options: List[Option] = field(default_factory=list)
    correct_answer: Optional[str] = None
    matching_pairs: List[Dict[str, str]] = field(default_factory=list)
    order_items: List[str] = field(default_factory=list)
    tolerance: Optional[float] = None
    explanation: str = ""
    images: List[Image] = field(default_factory=list)
    confidence: int = DEFAULT_CONFIDENCE
    warnings: List[str] = field(default_factory=list)

    @property
    def is_choice(self) -> bool:
        return self.type in CHOICE_TYPES

    def correct_options(self) -> List[Option]:
        return [opt for opt in self.options if opt.is_correct]

    def has_correct_answer(self) -> bool:
        return any(opt.is_correct for opt in self.options)

    def sync_correct_answer(self) -> None:
        """Point correct_answer at the first correct option (choice types only)."""
        if not self.is_choice:
            return
        correct = self.correct_options()
        self.correct_answer = correct[0].id if correct else None

    def _set_warning(self, warning: str, present: bool) -> None:
        if present and warning not in self.warnings:
            self.warnings.append(warning)
        elif not present:
            self.warnings = [w for w in self.warnings if w != warning]

    def check_warnings(self) -> List[str]:
        """Re-evaluate structural warnings after a mutation."""
        if self.is_choice:
            self._set_warning(NO_CORRECT_ANSWER, not self.has_correct_answer())
        else:
            self._set_warning(NO_CORRECT_ANSWER, False)

        self._set_warning(
            FEWER_THAN_TWO_OPTIONS,
            self.type == "multiple_choice" and len(self.options) < 2,
        )
        return self.warnings

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "text": self.text,
            "points": self.points,
            "options": [opt.to_dict() for opt in self.options],
            "correctAnswer": self.correct_answer,
            "images": [img.to_dict() for img in self.images],
            "confidence": self.confidence,
            "warnings": list(self.warnings),
        }
        if self.type == "matching":
            data["matchingPairs"] = [dict(pair) for pair in self.matching_pairs]
        if self.type == "ordering":
            data["orderItems"] = list(self.order_items)
        if self.type == "numerical":
            data["tolerance"] = self.tolerance
        if self.explanation:
            data["explanation"] = self.explanation
        return data


@dataclass
class QuizMetadata:
    """Provenance and aggregate statistics for a quiz."""
    source_type: str = "text"
    source_file: str = ""
    created_at: str = field(default_factory=utc_timestamp)
    parse_confidence: Optional[int] = None
    image_count: int = 0
    answer_key_found: bool = False
    source_count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceType": self.source_type,
            "sourceFile": self.source_file,
            "createdAt": self.created_at,
            "parseConfidence": self.parse_confidence,
            "imageCount": self.image_count,
            "answerKeyFound": self.answer_key_found,
            "sourceCount": self.source_count,
        }


@dataclass
class Quiz:
    """Root aggregate. ``id`` is generated at creation and never reassigned."""
    title: str
    description: str = ""
    questions: List[Question] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: QuizMetadata = field(default_factory=QuizMetadata)
    id: str = field(default_factory=generate_id)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def refresh_metadata(self, recompute_confidence: bool = False) -> None:
        """Recompute derived metadata (image count, optionally confidence)."""
        self.metadata.image_count = sum(len(q.images) for q in self.questions)
        if recompute_confidence:
            self.metadata.parse_confidence = (
                mean_confidence([q.confidence for q in self.questions])
                if self.questions else 0
            )

    def questions_needing_answers(self) -> List[Question]:
        return [q for q in self.questions if q.is_choice and not q.has_correct_answer()]

    def get_question(self, question_id: str) -> Question:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise KeyError(f"No question with id {question_id!r}")

    # ------------------------------------------------------------------
    # Editing surface
    # ------------------------------------------------------------------

    def add_question(self) -> Question:
        """Append a default four-option multiple-choice question."""
        question = Question(
            id=f"q{generate_id()}",
            type="multiple_choice",
            text="New Question",
            points=2.0,
            options=[
                Option("a", "Option A", True),
                Option("b", "Option B"),
                Option("c", "Option C"),
                Option("d", "Option D"),
            ],
            correct_answer="a",
            confidence=100,
        )
        self.questions.append(question)
        return question

    def update_question(self, question_id: str, **changes: Any) -> Question:
        """Apply field updates to one question and restore its invariants."""
        question = self.get_question(question_id)
        for name, value in changes.items():
            if name == "id" or not hasattr(question, name):
                raise AttributeError(f"Cannot update question field {name!r}")
            setattr(question, name, value)

        if "options" in changes or "type" in changes:
            question.sync_correct_answer()
        question.check_warnings()
        self.refresh_metadata()
        return question

    def delete_question(self, question_id: str) -> None:
        question = self.get_question(question_id)
        self.questions.remove(question)
        self.refresh_metadata()

    def add_image(self, question_id: str, image: Image) -> None:
        self.get_question(question_id).images.append(image)
        self.refresh_metadata()

    def remove_image(self, question_id: str, image_id: str) -> None:
        question = self.get_question(question_id)
        question.images = [img for img in question.images if img.id != image_id]
        self.refresh_metadata()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "questions": [q.to_dict() for q in self.questions],
            "warnings": list(self.warnings),
            "metadata": self.metadata.to_dict(),
        }


def degraded_quiz(source_type: str, source_file: str, label: str, error: Exception) -> Quiz:
    """
    Build the empty-but-valid quiz an adapter returns when it fails.

    Args:
        source_type: Model source type tag (qti, moodle, ...)
        source_file: Name of the file that failed
        label: Human name of the format for the description
        error: The exception caught at the adapter boundary
    """
    return Quiz(
        title="Import Error",
        description=f"Failed to parse {label} file: {error}",
        warnings=[f"Import failed: {error}"],
        metadata=QuizMetadata(
            source_type=source_type,
            source_file=source_file,
            parse_confidence=0,
        ),
    )
