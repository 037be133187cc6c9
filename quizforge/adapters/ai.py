"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

ai.py

External AI adapter: builds prompts, talks to the hosted model over HTTP
and normalizes whatever JSON comes back into the quiz model.

Three requests are supported:

- parse:    loosely formatted quiz text -> structured quiz
- generate: source material -> newly authored questions
- answers:  questions lacking a correct answer -> "N-Letter" lines, fed to
            the answer-key resolver unchanged

The reply payload is treated as untrusted. Every field is defaulted and
coerced before it enters the model; nothing in it is assumed to exist or to
have the right type.

Request shape (Anthropic Messages API, or a proxy that forwards to it):

    {"model": ..., "max_tokens": ..., "messages": [{"role": "user", "content": prompt}]}

The reply text is read from content[0].text. It may be raw JSON or JSON
inside a ```json (or bare ```) fence.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from quizforge.config import QuizForgeConfig
from quizforge.errors import ConfigurationError, ExternalServiceError, RateLimitError
from quizforge.model import (
    DEFAULT_CONFIDENCE,
    NO_QUESTIONS,
    QUESTION_TYPES,
    Image,
    Option,
    Question,
    Quiz,
    QuizMetadata,
    default_points,
    generate_id,
    mean_confidence,
)


logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
ANSWER_KEY_MAX_TOKENS = 2000

# Defaults applied when the proxy omits its rate-limit headers
DEFAULT_RATE_LIMIT = 10
DEFAULT_REMAINING = 0

FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
FENCED_RE = re.compile(r"```\s*([\s\S]*?)\s*```")

# Roughly four characters per token
LONG_SOURCE_TOKENS = 100000

GENERATED_TITLE = "Generated Quiz"
GENERATED_DESCRIPTION = "Quiz generated from source material"
NO_QUESTIONS_GENERATED = "No questions generated"
MISSING_TEXT = "Question text missing"
UNTITLED = "Untitled Quiz"

BLOOMS_DESCRIPTIONS = {
    "remember": "recall facts and basic concepts",
    "understand": "explain ideas or concepts",
    "apply": "use information in new situations",
    "analyze": "draw connections among ideas",
    "evaluate": "justify a decision or course of action",
    "create": "produce new or original work",
}

DIFFICULTIES = ("easy", "medium", "hard")
DISTRACTOR_QUALITIES = ("plausible", "very_plausible", "common_misconceptions")

_TRUE_FALSE_IDS = {"t": "t", "true": "t", "f": "f", "false": "f"}


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class RateLimitInfo:
    """Counters reported by the rate-limiting proxy after each call."""
    limit: int = DEFAULT_RATE_LIMIT
    remaining: int = DEFAULT_RATE_LIMIT

    @classmethod
    def from_headers(cls, headers: Any) -> "RateLimitInfo":
        def read(name: str, default: int) -> int:
            try:
                return int(headers.get(name) or default)
            except ValueError:
                return default
        return cls(
            limit=read("X-RateLimit-Limit", DEFAULT_RATE_LIMIT),
            remaining=read("X-RateLimit-Remaining", DEFAULT_REMAINING),
        )


@dataclass
class GenerationConfig:
    """What to ask for when authoring a quiz from source material."""
    question_types: Dict[str, int] = field(default_factory=lambda: {
        "multiple_choice": 4,
        "true_false": 3,
        "short_answer": 2,
        "essay": 1,
    })
    difficulty: str = "medium"
    blooms_levels: List[str] = field(default_factory=lambda: ["remember", "understand"])
    include_explanations: bool = True
    distractor_quality: str = "plausible"

    @property
    def total_questions(self) -> int:
        return sum(count for count in self.question_types.values() if count > 0)


# ============================================================================
# Prompts
# ============================================================================

PARSE_PROMPT = """You are a quiz parsing assistant. Parse the following quiz content and extract structured data.

IMPORTANT: Look for an answer key in the document. It might be at the end, labeled "Answer Key", "Answers", or just a list like "1-B, 2-A, 3-C". If you find answers, mark the correct options.

Handle inconsistent formatting gracefully:
- Questions may be numbered as 1., 1), A., a), etc.
- Answer choices may use various markers
- Question types: multiple_choice, multiple_select, true_false, short_answer, essay, matching, fill_blank
{image_context}

Output ONLY valid JSON in this format:
{{
  "title": "Quiz Title",
  "description": "Instructions if found",
  "questions": [
    {{
      "id": "q1",
      "type": "multiple_choice",
      "text": "Question text",
      "points": 1,
      "options": [
        {{"id": "a", "text": "Option A", "isCorrect": false}},
        {{"id": "b", "text": "Option B", "isCorrect": true}}
      ],
      "correctAnswer": "b",
      "confidence": 95,
      "warnings": [],
      "imageRefs": []
    }}
  ],
  "answerKeyFound": true,
  "warnings": []
}}

For true_false: options should be [{{"id": "t", "text": "True", "isCorrect": ?}}, {{"id": "f", "text": "False", "isCorrect": ?}}]
Confidence: 0-100 indicating parsing confidence.
answerKeyFound: true if you found and applied an answer key.

QUIZ CONTENT:
---
{content}
---"""

IMAGE_CONTEXT = (
    "\n\nNOTE: This document contains {count} embedded images. They are referenced as "
    "[IMAGE_1], [IMAGE_2], etc. When you detect that a question references an image, "
    'include an "imageRefs" array with the image numbers.'
)

GENERATION_PROMPT = """You are an expert educator creating quiz questions from source material.

SOURCE MATERIAL:
{source_text}

REQUIREMENTS:
Generate exactly {total} questions with this breakdown:
{breakdown}

Difficulty level: {difficulty}
Bloom's taxonomy levels to target: {blooms}
{explanations}

DISTRACTOR QUALITY: {distractors}

CONSTRAINTS:
- All questions must be directly answerable from the source material
- Distractors must be plausible but clearly incorrect when compared to source
- Avoid trick questions, double negatives, and "all of the above" or "none of the above" options
- Each question should test a distinct concept from the material
- Match the requested difficulty and cognitive levels
- For true/false questions, ensure approximately half are true and half are false
- For matching questions, provide 4-6 pairs with clear, distinct matches
- For short answer and essay questions, provide a model answer

OUTPUT FORMAT - Return ONLY valid JSON matching this exact structure:
{{
  "title": "Generated Quiz",
  "description": "Quiz generated from source material",
  "questions": [
    {{
      "type": "multiple_choice",
      "text": "Question text here?",
      "points": 2,
      "options": [
        {{"id": "a", "text": "Option A", "isCorrect": true}},
        {{"id": "b", "text": "Option B", "isCorrect": false}},
        {{"id": "c", "text": "Option C", "isCorrect": false}},
        {{"id": "d", "text": "Option D", "isCorrect": false}}
      ],
      "explanation": "Explanation of why A is correct (if explanations enabled)",
      "confidence": 90
    }},
    {{
      "type": "true_false",
      "text": "Statement to evaluate as true or false.",
      "points": 1,
      "options": [
        {{"id": "true", "text": "True", "isCorrect": true}},
        {{"id": "false", "text": "False", "isCorrect": false}}
      ],
      "explanation": "Explanation",
      "confidence": 95
    }},
    {{
      "type": "short_answer",
      "text": "Short answer question?",
      "points": 3,
      "correctAnswer": "Expected answer or key points",
      "explanation": "Model answer or grading rubric",
      "confidence": 85
    }},
    {{
      "type": "essay",
      "text": "Essay question requiring detailed response?",
      "points": 10,
      "correctAnswer": "Key points that should be covered",
      "explanation": "Grading rubric or model answer outline",
      "confidence": 80
    }},
    {{
      "type": "matching",
      "text": "Match the items in Column A with Column B",
      "points": 4,
      "matchingPairs": [
        {{"left": "Term 1", "right": "Definition 1"}},
        {{"left": "Term 2", "right": "Definition 2"}},
        {{"left": "Term 3", "right": "Definition 3"}},
        {{"left": "Term 4", "right": "Definition 4"}}
      ],
      "confidence": 88
    }},
    {{
      "type": "fill_blank",
      "text": "Complete the sentence: The ____ is important because ____.",
      "points": 2,
      "correctAnswer": "First blank answer; Second blank answer",
      "confidence": 82
    }},
    {{
      "type": "ordering",
      "text": "Arrange the following in correct order:",
      "points": 3,
      "orderItems": ["First item", "Second item", "Third item", "Fourth item"],
      "confidence": 85
    }},
    {{
      "type": "numerical",
      "text": "Calculate the value of X.",
      "points": 2,
      "correctAnswer": "42",
      "tolerance": 0.5,
      "explanation": "Calculation steps",
      "confidence": 90
    }}
  ]
}}

IMPORTANT: Return ONLY the JSON object, no additional text before or after."""

ANSWER_KEY_PROMPT = """You are helping a teacher create an answer key. For each question below, provide the most likely correct answer.

IMPORTANT: Only output the answers in this exact format, one per line:
1-B
2-A
3-True
etc.

Do not include explanations. Just the question number, a dash, and the answer letter or True/False.

Questions:
{questions}"""


def build_parse_prompt(content: str, image_count: int = 0) -> str:
    image_context = IMAGE_CONTEXT.format(count=image_count) if image_count > 0 else ""
    return PARSE_PROMPT.format(image_context=image_context, content=content)


def build_generation_prompt(source_text: str, config: GenerationConfig) -> str:
    breakdown = "\n".join(
        f"- {qtype.replace('_', ' ')}: {count}"
        for qtype, count in config.question_types.items()
        if count > 0
    )
    blooms = ", ".join(
        f"{level}: {BLOOMS_DESCRIPTIONS.get(level, level)}" for level in config.blooms_levels
    )
    explanations = (
        "Include explanations for correct answers."
        if config.include_explanations else "Do not include explanations."
    )
    return GENERATION_PROMPT.format(
        source_text=source_text,
        total=config.total_questions,
        breakdown=breakdown,
        difficulty=config.difficulty,
        blooms=blooms,
        explanations=explanations,
        distractors=config.distractor_quality.replace("_", " "),
    )


def build_answer_key_prompt(quiz: Quiz) -> str:
    """
    List the questions still lacking a correct answer, numbered by their
    position in the whole quiz so the reply lines up with the resolver.
    """
    needing = {q.id for q in quiz.questions_needing_answers()}
    blocks = []
    for number, question in enumerate(quiz.questions, start=1):
        if question.id not in needing:
            continue
        block = f"{number}. {question.text}\n"
        block += "\n".join(f"   {opt.id.upper()}) {opt.text}" for opt in question.options)
        blocks.append(block)
    return ANSWER_KEY_PROMPT.format(questions="\n\n".join(blocks))


# ============================================================================
# Response Handling
# ============================================================================

def extract_json(text: str) -> Any:
    """
    Decode the JSON in a model reply, fenced or not.

    Raises:
        ExternalServiceError: No valid JSON in the reply
    """
    match = FENCED_JSON_RE.search(text) or FENCED_RE.search(text)
    candidate = match.group(1) if match else text
    try:
        return json.loads(candidate.strip())
    except ValueError:
        pass
    try:
        return json.loads(text.strip())
    except ValueError as e:
        raise ExternalServiceError(f"AI response was not valid JSON: {e}") from e


def _as_str(value: Any, default: str = "") -> str:
    if value is None or isinstance(value, (dict, list)):
        return default
    text = str(value).strip()
    return text or default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_confidence(value: Any) -> int:
    number = _as_float(value)
    if number is None or number <= 0:
        return DEFAULT_CONFIDENCE
    return int(math.floor(min(number, 100) + 0.5))


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


def _normalize_options(raw: Any, qtype: str, correct_answer: str) -> List[Option]:
    options: List[Option] = []
    if isinstance(raw, list):
        for index, entry in enumerate(raw):
            if not isinstance(entry, dict):
                continue
            option_id = _as_str(entry.get("id"), chr(ord("a") + index)).lower()
            options.append(Option(option_id, _as_str(entry.get("text")), _as_bool(entry.get("isCorrect"))))

    if qtype == "true_false":
        if len(options) == 2:
            for option in options:
                option.id = _TRUE_FALSE_IDS.get(option.id, option.id)
        elif not options:
            options = [Option("t", "True"), Option("f", "False")]

    # A bare correctAnswer still marks an option when none is flagged
    if options and not any(opt.is_correct for opt in options) and correct_answer:
        wanted = correct_answer.lower()
        if qtype == "true_false":
            wanted = _TRUE_FALSE_IDS.get(wanted, wanted)
        for option in options:
            option.is_correct = option.id == wanted

    return options


def _resolve_image_refs(raw: Any, images: Sequence[Image]) -> List[Image]:
    attached: List[Image] = []
    if not isinstance(raw, list):
        return attached
    for ref in raw:
        number = _as_float(ref)
        if number is None:
            continue
        index = int(number) - 1
        if 0 <= index < len(images):
            attached.append(dataclasses.replace(images[index], id=generate_id()))
    return attached


def normalize_question(raw: Dict[str, Any], number: int, images: Sequence[Image] = (),
                       generated: bool = False) -> Question:
    """Admit one untrusted question object into the model."""
    qtype = _as_str(raw.get("type"), "multiple_choice").lower()
    if qtype not in QUESTION_TYPES:
        logger.debug("Unknown question type %r from AI; using multiple_choice", qtype)
        qtype = "multiple_choice"

    points = _as_float(raw.get("points"))
    if points is None or points <= 0:
        points = 2.0 if generated else default_points(qtype)

    correct_answer = _as_str(raw.get("correctAnswer"))

    question = Question(
        id=f"q{number}",
        type=qtype,
        text=_as_str(raw.get("text"), MISSING_TEXT),
        points=points,
        options=_normalize_options(raw.get("options"), qtype, correct_answer),
        correct_answer=correct_answer or None,
        explanation=_as_str(raw.get("explanation")),
        images=_resolve_image_refs(raw.get("imageRefs"), images),
        confidence=_as_confidence(raw.get("confidence")),
        warnings=_as_str_list(raw.get("warnings")),
    )

    pairs = raw.get("matchingPairs")
    if isinstance(pairs, list):
        question.matching_pairs = [
            {"left": _as_str(pair.get("left")), "right": _as_str(pair.get("right"))}
            for pair in pairs if isinstance(pair, dict)
        ]
    question.order_items = _as_str_list(raw.get("orderItems"))
    question.tolerance = _as_float(raw.get("tolerance"))

    if question.is_choice:
        question.sync_correct_answer()
    question.check_warnings()
    return question


def normalize_payload(
    payload: Any,
    source_type: str = "text",
    source_file: str = "",
    images: Sequence[Image] = (),
    generated: bool = False,
) -> Quiz:
    """
    Turn a decoded AI reply into a Quiz.

    Args:
        payload: Decoded JSON (any shape)
        source_type: Model source type for metadata
        source_file: Name recorded in metadata
        images: Extracted images, addressed 1-based by imageRefs
        generated: Apply generation-mode defaults

    Raises:
        ExternalServiceError: The payload is not a JSON object
    """
    if not isinstance(payload, dict):
        raise ExternalServiceError("AI response was not a quiz object")

    raw_questions = payload.get("questions")
    if not isinstance(raw_questions, list):
        raw_questions = []

    questions: List[Question] = []
    for raw in raw_questions:
        if not isinstance(raw, dict):
            logger.warning("Skipping malformed question from AI: %r", raw)
            continue
        questions.append(normalize_question(raw, len(questions) + 1, images, generated))

    warnings = _as_str_list(payload.get("warnings"))
    if not questions:
        warnings.append(NO_QUESTIONS_GENERATED if generated else NO_QUESTIONS)

    quiz = Quiz(
        title=_as_str(payload.get("title"), GENERATED_TITLE if generated else UNTITLED),
        description=_as_str(payload.get("description"), GENERATED_DESCRIPTION if generated else ""),
        questions=questions,
        warnings=warnings,
        metadata=QuizMetadata(
            source_type=source_type,
            source_file=source_file or ("Source Material" if generated else "Text Input"),
            parse_confidence=mean_confidence([q.confidence for q in questions]),
            answer_key_found=_as_bool(payload.get("answerKeyFound")),
        ),
    )
    quiz.refresh_metadata()
    return quiz


# ============================================================================
# HTTP Client
# ============================================================================

def _error_message(response: httpx.Response) -> Optional[str]:
    """The service's error.message, if the body carries one."""
    try:
        data = response.json()
    except ValueError:
        return None
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return None


class AIClient:
    """
    Async client for the hosted model (or a proxy in front of it).

    No timeout is applied; a slow reply simply keeps the caller waiting.
    """

    def __init__(self, config: QuizForgeConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.rate_limit = RateLimitInfo()
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        if not self.config.proxy:
            headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    async def complete(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """
        Send one user message and return the reply text.

        Raises:
            RateLimitError: HTTP 429
            ExternalServiceError: Network failure, other non-2xx, or empty reply
        """
        self.config.require_api_access()

        body = {
            "model": self.config.model,
            "max_tokens": max_tokens or self.config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

        try:
            async with httpx.AsyncClient(timeout=None, transport=self._transport) as client:
                response = await client.post(self.config.api_url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Could not reach AI service: {e}") from e

        self.rate_limit = RateLimitInfo.from_headers(response.headers)

        if response.status_code == 429:
            message = _error_message(response) or "Rate limit exceeded"
            logger.warning("AI rate limit hit (%d/%d remaining)",
                           self.rate_limit.remaining, self.rate_limit.limit)
            raise RateLimitError(message, self.rate_limit.limit, self.rate_limit.remaining)

        if response.is_error:
            raise ExternalServiceError(
                _error_message(response) or "API request failed", status_code=response.status_code
            )

        try:
            data = response.json()
            text = data["content"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError("No content received from AI") from e
        if not isinstance(text, str) or not text.strip():
            raise ExternalServiceError("No content received from AI")
        return text

    async def parse_quiz(
        self,
        content: str,
        images: Sequence[Image] = (),
        source_type: str = "text",
        source_file: str = "",
    ) -> Quiz:
        """Have the model structure loosely formatted quiz text."""
        reply = await self.complete(build_parse_prompt(content, len(images)))
        quiz = normalize_payload(extract_json(reply), source_type, source_file, images)
        logger.info("AI parse: %d question(s), confidence %s",
                    len(quiz.questions), quiz.metadata.parse_confidence)
        return quiz

    async def generate_quiz(
        self,
        source_text: str,
        generation: Optional[GenerationConfig] = None,
        source_type: str = "text",
        source_file: str = "",
    ) -> Quiz:
        """
        Have the model author new questions from source material.

        Raises:
            ConfigurationError: No question type has a positive count
        """
        generation = generation or GenerationConfig()
        if generation.total_questions == 0:
            raise ConfigurationError("Please select at least one question type with a count greater than 0.")

        if len(source_text) / 4 > LONG_SOURCE_TOKENS:
            logger.warning("Source material is very long; consider targeting a page range")

        reply = await self.complete(build_generation_prompt(source_text, generation))
        quiz = normalize_payload(extract_json(reply), source_type, source_file, generated=True)
        logger.info("AI generation: %d of %d requested question(s)",
                    len(quiz.questions), generation.total_questions)
        return quiz

    async def suggest_answer_key(self, quiz: Quiz) -> str:
        """
        Ask for likely answers to the questions without one.

        Returns:
            The raw "N-Letter" reply, or "" when every question is answered
        """
        if not quiz.questions_needing_answers():
            return ""
        return await self.complete(build_answer_key_prompt(quiz), max_tokens=ANSWER_KEY_MAX_TOKENS)
