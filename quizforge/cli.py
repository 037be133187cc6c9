#!/usr/bin/env python3
"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

cli.py - Convert quiz documents into a QTI 1.2 package

Usage:
    quizforge biology_test.pdf answers.txt
    quizforge unit3.docx moodle_export.xml --answer-key "1-B, 2-A, 3-True"
    quizforge chapter5.pdf --generate --pages 10-14 --title "Chapter 5 Review"
    quizforge --text "1. What is 2+2? A) 3 B) 4" --dry-run

Files are read concurrently, merged into one quiz, summarised for review and
written as <title>_quiz.zip into the output directory.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections import Counter
from pathlib import Path
from typing import List, Optional, Tuple

from quizforge.adapters.ai import DIFFICULTIES, AIClient, GenerationConfig
from quizforge.answer_key import apply_answer_key, parse_answer_key
from quizforge.config import QuizForgeConfig, load_config
from quizforge.errors import ConfigurationError, ExternalServiceError, InputRejectedError, RateLimitError
from quizforge.export import build_package_zip, package_filename
from quizforge.icons import ERROR, INFO, SUCCESS, WARNING
from quizforge.model import Quiz
from quizforge.pipeline import Session, UploadedFile


TEXT_INPUT_NAME = "Text Input"


def page_range(value: str) -> Tuple[Optional[int], Optional[int]]:
    """argparse type for START-END, START- or -END (1-based, inclusive)."""
    start, sep, end = value.partition("-")
    try:
        first = int(start) if start.strip() else None
        last = int(end) if sep and end.strip() else (first if not sep else None)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid page range: {value!r}")
    if first is None and last is None:
        raise argparse.ArgumentTypeError(f"invalid page range: {value!r}")
    return first, last


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quizforge",
        description="Convert quiz documents (PDF, Word, text, QTI, Moodle, Blackboard) to a QTI 1.2 package"
    )
    parser.add_argument(
        "files",
        nargs="*",
        type=Path,
        help="Input files (.pdf, .docx, .txt, .xml, .zip)"
    )
    parser.add_argument(
        "--text",
        help="Quiz text to parse in addition to any files"
    )
    parser.add_argument(
        "--answer-key",
        help='Answer key to apply, e.g. "1-B, 2-A, 3-True" or "B, A, TRUE"'
    )
    parser.add_argument(
        "--suggest-answers",
        action="store_true",
        help="Ask the AI service for answers to questions that have none"
    )
    parser.add_argument(
        "--title",
        help="Quiz title for the export (default: detected title)"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("."),
        help="Output directory (default: current directory)"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--ai",
        action="store_true",
        help="Parse the text with the AI service instead of the built-in parser"
    )
    mode.add_argument(
        "--generate",
        action="store_true",
        help="Have the AI service write new questions from the source material"
    )
    parser.add_argument(
        "--difficulty",
        choices=DIFFICULTIES,
        default="medium",
        help="Difficulty for --generate (default: medium)"
    )
    parser.add_argument(
        "--pages",
        type=page_range,
        help="PDF page range, e.g. 3-7"
    )
    parser.add_argument(
        "--config",
        help="Path to quizforge.yaml (default: $QUIZFORGE_CONFIG or ./quizforge.yaml)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the review summary without writing the package"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging"
    )
    return parser


# ============================================================================
# Output
# ============================================================================

def print_summary(quiz: Quiz, session: Session) -> None:
    meta = quiz.metadata
    types = Counter(q.type for q in quiz.questions)

    print(f"\n[quizforge] {quiz.title}")
    print(f"[quizforge]   questions: {len(quiz.questions)}")
    for qtype, count in sorted(types.items()):
        print(f"[quizforge]     {qtype}: {count}")
    print(f"[quizforge]   confidence: {meta.parse_confidence if meta.parse_confidence is not None else '-'}%")
    print(f"[quizforge]   answer key: {'found' if meta.answer_key_found else 'not found'}")
    if meta.image_count:
        print(f"[quizforge]   images: {meta.image_count}")

    for content in session.contents:
        if content.dropped_items:
            print(f"[quizforge:warn] {WARNING} {content.name}: {content.dropped_items} item(s) could not be read")

    for warning in quiz.warnings:
        print(f"[quizforge:warn] {WARNING} {warning}")

    for number, question in enumerate(quiz.questions, start=1):
        for warning in question.warnings:
            print(f"[quizforge:warn] {WARNING} Question {number}: {warning}")


def print_rate_limit(client: AIClient, config: QuizForgeConfig) -> None:
    if config.proxy:
        print(f"[quizforge] {INFO} AI requests remaining: "
              f"{client.rate_limit.remaining}/{client.rate_limit.limit}")


# ============================================================================
# Run
# ============================================================================

async def run(args: argparse.Namespace, uploads: List[UploadedFile], config: QuizForgeConfig) -> Tuple[Optional[Quiz], Session]:
    page_start, page_end = args.pages or (None, None)

    session = Session()
    added = await session.add_files(uploads, page_start, page_end)
    for content in added:
        print(f"[quizforge] {SUCCESS} {content.name} ({content.file_type})")
    for warning in session.warnings:
        print(f"[quizforge:warn] {WARNING} {warning}")

    client = None
    if args.ai or args.generate or args.suggest_answers:
        config.require_api_access()
        client = AIClient(config)

    if args.generate:
        print("[quizforge] Generating questions with AI...")
        quiz = await session.generate(client, GenerationConfig(difficulty=args.difficulty))
    else:
        if args.ai:
            print("[quizforge] Parsing with AI...")
        quiz = await session.process(client if args.ai else None)

    if quiz is not None and args.answer_key:
        answers = parse_answer_key(args.answer_key, len(quiz.questions))
        applied = apply_answer_key(quiz, answers)
        print(f"[quizforge] Applied {applied} answer(s) from the answer key")

    if quiz is not None and client is not None and args.suggest_answers:
        suggestion = await client.suggest_answer_key(quiz)
        if suggestion:
            applied = apply_answer_key(quiz, parse_answer_key(suggestion, len(quiz.questions)))
            print(f"[quizforge] Applied {applied} AI-suggested answer(s); please review them")

    if client is not None:
        print_rate_limit(client, config)

    return quiz, session


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.files and not args.text:
        print(f"{ERROR} Nothing to convert: give one or more files or --text")
        return 1

    uploads: List[UploadedFile] = []
    for path in args.files:
        if not path.is_file():
            print(f"{ERROR} File not found: {path}")
            return 1
        uploads.append(UploadedFile(path.name, path.read_bytes()))
    if args.text:
        uploads.append(UploadedFile(TEXT_INPUT_NAME, args.text.encode("utf-8"), "text/plain"))

    try:
        config = load_config(args.config)
        quiz, session = asyncio.run(run(args, uploads, config))

    except InputRejectedError as e:
        print(f"{ERROR} {e}")
        return 1
    except ConfigurationError as e:
        print(f"{ERROR} Configuration error: {e}")
        return 1
    except RateLimitError as e:
        print(f"{ERROR} {e} ({e.remaining}/{e.limit} requests remaining)")
        return 1
    except ExternalServiceError as e:
        print(f"{ERROR} AI service error: {e}")
        return 1

    if quiz is None or not quiz.questions:
        print(f"{ERROR} No questions could be found in the input")
        return 1

    if args.title:
        quiz.title = args.title

    print_summary(quiz, session)

    settings = config.export
    settings.title = args.title or settings.title or quiz.title

    if args.dry_run:
        print(f"\n[quizforge] {INFO} Dry run: would write {package_filename(settings.title)}")
        return 0

    args.output.mkdir(parents=True, exist_ok=True)
    target = args.output / package_filename(settings.title)
    target.write_bytes(build_package_zip(quiz, settings))

    print(f"\n[quizforge] {SUCCESS} Wrote {target}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
