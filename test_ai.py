"""
AI adapter: reply decoding, payload normalization and the HTTP client.

The client is exercised against httpx.MockTransport; nothing leaves the
process.
"""

import asyncio
import json

import httpx
import pytest

from quizforge.adapters.ai import (
    ANTHROPIC_VERSION,
    NO_QUESTIONS_GENERATED,
    AIClient,
    GenerationConfig,
    build_answer_key_prompt,
    build_generation_prompt,
    build_parse_prompt,
    extract_json,
    normalize_payload,
)
from quizforge.config import QuizForgeConfig
from quizforge.errors import ConfigurationError, ExternalServiceError, RateLimitError
from quizforge.model import NO_CORRECT_ANSWER, NO_QUESTIONS

from conftest import choice_question, make_quiz, sample_image


def reply(text, status=200, headers=None):
    return httpx.Response(status, json={"content": [{"type": "text", "text": text}]}, headers=headers)


def make_client(handler, **config):
    config.setdefault("api_key", "test-key")
    return AIClient(QuizForgeConfig(**config), transport=httpx.MockTransport(handler))


# ============================================================================
# Reply Decoding
# ============================================================================

def test_extract_json_from_json_fence():
    assert extract_json('Here you go:\n```json\n{"title": "A"}\n```\nDone.') == {"title": "A"}


def test_extract_json_from_bare_fence():
    assert extract_json('```\n{"title": "B"}\n```') == {"title": "B"}


def test_extract_json_raw():
    assert extract_json('  {"questions": []}  ') == {"questions": []}


def test_extract_json_invalid():
    with pytest.raises(ExternalServiceError):
        extract_json("I could not find a quiz in that text.")


# ============================================================================
# Payload Normalization
# ============================================================================

def test_payload_defaults_and_ids():
    quiz = normalize_payload({
        "questions": [
            {"type": "multiple_choice", "text": "Pick", "options": [
                {"id": "A", "text": "One", "isCorrect": True},
                {"text": "Two"},
            ]},
            "not a question",
            {"type": "hotspot", "text": "Odd", "points": "lots"},
        ],
    }, source_type="pdf")

    assert quiz.title == "Untitled Quiz"
    assert quiz.metadata.source_type == "pdf"
    assert quiz.metadata.source_file == "Text Input"
    assert [q.id for q in quiz.questions] == ["q1", "q2"]

    first, second = quiz.questions
    assert [o.id for o in first.options] == ["a", "b"]
    assert first.correct_answer == "a"
    assert first.confidence == 80
    assert second.type == "multiple_choice"
    assert second.points == 2.0


def test_true_false_word_ids_become_letters():
    quiz = normalize_payload({"questions": [{
        "type": "true_false",
        "text": "Water boils at 100C at sea level.",
        "options": [
            {"id": "true", "text": "True", "isCorrect": False},
            {"id": "false", "text": "False", "isCorrect": True},
        ],
    }]})

    question = quiz.questions[0]
    assert [o.id for o in question.options] == ["t", "f"]
    assert question.correct_answer == "f"


def test_bare_correct_answer_marks_option():
    quiz = normalize_payload({"questions": [{
        "type": "multiple_choice",
        "text": "Pick",
        "options": [{"id": "a", "text": "One"}, {"id": "b", "text": "Two"}],
        "correctAnswer": "B",
    }]})
    assert [o.is_correct for o in quiz.questions[0].options] == [False, True]


def test_warnings_reflect_structure_not_reply():
    quiz = normalize_payload({"questions": [
        {"type": "multiple_choice", "text": "Unanswered", "options": [{"text": "x"}, {"text": "y"}]},
        {"type": "essay", "text": "Discuss", "warnings": ["Ambiguous wording"]},
    ]})

    unanswered, essay = quiz.questions
    assert NO_CORRECT_ANSWER in unanswered.warnings
    assert essay.warnings == ["Ambiguous wording"]


def test_image_refs_attach_copies():
    images = [sample_image("one.png"), sample_image("two.png")]
    quiz = normalize_payload(
        {"questions": [{"type": "essay", "text": "See figure", "imageRefs": [2, 7, "x"]}]},
        images=images,
    )

    attached = quiz.questions[0].images
    assert [img.filename for img in attached] == ["two.png"]
    assert attached[0].id != images[1].id
    assert quiz.metadata.image_count == 1


def test_confidence_is_mean_of_questions():
    quiz = normalize_payload({
        "answerKeyFound": True,
        "questions": [
            {"type": "essay", "text": "A", "confidence": 90},
            {"type": "essay", "text": "B", "confidence": 71},
            {"type": "essay", "text": "C", "confidence": 250},
        ],
    })

    assert [q.confidence for q in quiz.questions] == [90, 71, 100]
    assert quiz.metadata.parse_confidence == 87
    assert quiz.metadata.answer_key_found is True


def test_fractional_confidence_rounds_half_up():
    quiz = normalize_payload({"questions": [
        {"type": "essay", "text": "A", "confidence": 92.5},
        {"type": "essay", "text": "B", "confidence": 94},
    ]})

    assert [q.confidence for q in quiz.questions] == [93, 94]
    # (93 + 94) / 2 = 93.5
    assert quiz.metadata.parse_confidence == 94


def test_empty_reply_is_warned():
    assert normalize_payload({}).warnings == [NO_QUESTIONS]

    generated = normalize_payload({"questions": "none"}, generated=True)
    assert generated.warnings == [NO_QUESTIONS_GENERATED]
    assert generated.title == "Generated Quiz"
    assert generated.metadata.source_file == "Source Material"


def test_generated_extras():
    quiz = normalize_payload({"questions": [
        {"type": "matching", "text": "Match", "matchingPairs": [{"left": "H2O", "right": "Water"}, "junk"]},
        {"type": "ordering", "text": "Order", "orderItems": ["one", "two"]},
        {"type": "numerical", "text": "Calc", "correctAnswer": "42", "tolerance": "0.5"},
    ]}, generated=True)

    matching, ordering, numerical = quiz.questions
    assert matching.matching_pairs == [{"left": "H2O", "right": "Water"}]
    assert matching.points == 2.0
    assert ordering.order_items == ["one", "two"]
    assert numerical.correct_answer == "42"
    assert numerical.tolerance == 0.5


def test_non_object_payload_is_rejected():
    with pytest.raises(ExternalServiceError):
        normalize_payload([{"type": "essay"}])


# ============================================================================
# Prompts
# ============================================================================

def test_parse_prompt_mentions_images_only_when_present():
    assert "[IMAGE_1]" not in build_parse_prompt("1. Q?")
    prompt = build_parse_prompt("1. Q?", image_count=3)
    assert "contains 3 embedded images" in prompt
    assert prompt.rstrip().endswith("1. Q?\n---")


def test_generation_prompt_breakdown():
    config = GenerationConfig(
        question_types={"multiple_choice": 3, "true_false": 0, "short_answer": 1},
        difficulty="hard",
        blooms_levels=["apply"],
        include_explanations=False,
        distractor_quality="common_misconceptions",
    )
    prompt = build_generation_prompt("Photosynthesis notes", config)

    assert "Generate exactly 4 questions" in prompt
    assert "- multiple choice: 3" in prompt
    assert "true false" not in prompt
    assert "apply: use information in new situations" in prompt
    assert "Do not include explanations." in prompt
    assert "DISTRACTOR QUALITY: common misconceptions" in prompt


def test_answer_key_prompt_numbers_by_position():
    quiz = make_quiz([
        choice_question("q1", correct="a"),
        choice_question("q2"),
        choice_question("q3", qtype="true_false"),
    ])
    prompt = build_answer_key_prompt(quiz)

    assert "1. Question q1?" not in prompt
    assert "2. Question q2?\n   A) Option A" in prompt
    assert "3. Question q3?\n   T) Option T\n   F) Option F" in prompt


# ============================================================================
# HTTP Client
# ============================================================================

def test_complete_sends_messages_request():
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return reply("hello", headers={"X-RateLimit-Limit": "20", "X-RateLimit-Remaining": "19"})

    client = make_client(handler, model="test-model", max_tokens=123)
    assert asyncio.run(client.complete("Say hello")) == "hello"

    assert seen["headers"]["x-api-key"] == "test-key"
    assert seen["headers"]["anthropic-version"] == ANTHROPIC_VERSION
    assert seen["body"] == {
        "model": "test-model",
        "max_tokens": 123,
        "messages": [{"role": "user", "content": "Say hello"}],
    }
    assert (client.rate_limit.limit, client.rate_limit.remaining) == (20, 19)


def test_proxy_requests_omit_key_and_version():
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        return reply("ok")

    client = make_client(handler, api_key=None, proxy=True, api_url="https://proxy.example.edu/api/anthropic")
    asyncio.run(client.complete("ping"))

    assert "x-api-key" not in seen["headers"]
    assert "anthropic-version" not in seen["headers"]
    # Missing headers fall back to the proxy defaults
    assert (client.rate_limit.limit, client.rate_limit.remaining) == (10, 0)


def test_rate_limited():
    def handler(request):
        return httpx.Response(
            429,
            json={"error": {"message": "Too many requests this hour"}},
            headers={"X-RateLimit-Limit": "10", "X-RateLimit-Remaining": "0"},
        )

    with pytest.raises(RateLimitError) as excinfo:
        asyncio.run(make_client(handler).complete("hi"))

    assert str(excinfo.value) == "Too many requests this hour"
    assert excinfo.value.limit == 10
    assert excinfo.value.remaining == 0
    assert excinfo.value.status_code == 429


def test_server_error():
    def handler(request):
        return httpx.Response(500, text="upstream exploded")

    with pytest.raises(ExternalServiceError) as excinfo:
        asyncio.run(make_client(handler).complete("hi"))

    assert str(excinfo.value) == "API request failed"
    assert excinfo.value.status_code == 500


def test_empty_content_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"content": []})

    with pytest.raises(ExternalServiceError, match="No content received from AI"):
        asyncio.run(make_client(handler).complete("hi"))


def test_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalServiceError, match="Could not reach AI service"):
        asyncio.run(make_client(handler).complete("hi"))


def test_missing_key_fails_before_any_request():
    calls = []

    def handler(request):
        calls.append(request)
        return reply("never")

    with pytest.raises(ConfigurationError):
        asyncio.run(make_client(handler, api_key=None).complete("hi"))
    assert calls == []


def test_parse_quiz_end_to_end():
    payload = {
        "title": "Cells",
        "answerKeyFound": True,
        "questions": [{
            "type": "multiple_choice",
            "text": "Powerhouse?",
            "options": [{"id": "a", "text": "Nucleus"}, {"id": "b", "text": "Mitochondria", "isCorrect": True}],
            "confidence": 92,
        }],
    }

    def handler(request):
        return reply("```json\n" + json.dumps(payload) + "\n```")

    quiz = asyncio.run(make_client(handler).parse_quiz("1. Powerhouse?", source_type="docx", source_file="cells.docx"))

    assert quiz.title == "Cells"
    assert quiz.questions[0].correct_answer == "b"
    assert quiz.metadata.source_file == "cells.docx"
    assert quiz.metadata.parse_confidence == 92


def test_generate_requires_a_question_count():
    client = make_client(lambda request: reply("{}"))
    config = GenerationConfig(question_types={"multiple_choice": 0})

    with pytest.raises(ConfigurationError):
        asyncio.run(client.generate_quiz("Some notes", config))


def test_suggest_answer_key_skips_answered_quiz():
    calls = []

    def handler(request):
        calls.append(request)
        return reply("1-A")

    client = make_client(handler)
    answered = make_quiz([choice_question("q1", correct="a")])
    unanswered = make_quiz([choice_question("q1")])

    assert asyncio.run(client.suggest_answer_key(answered)) == ""
    assert asyncio.run(client.suggest_answer_key(unanswered)) == "1-A"
    assert len(calls) == 1
    assert json.loads(calls[0].content)["max_tokens"] == 2000
