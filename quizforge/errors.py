"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

errors.py

Exception hierarchy shared across QuizForge.

Adapters never raise these past their own boundary; they are raised by
upload validation, configuration loading and the AI service boundary.
"""

from __future__ import annotations

from typing import List, Optional


class QuizForgeError(Exception):
    """Base class for all QuizForge errors"""
    pass


class ConfigurationError(QuizForgeError):
    """Missing or malformed configuration"""
    pass


class InputRejectedError(QuizForgeError):
    """Uploaded files were rejected before any adapter ran."""

    def __init__(self, message: str, file_names: Optional[List[str]] = None):
        super().__init__(message)
        self.file_names = list(file_names or [])


class ExternalServiceError(QuizForgeError):
    """The hosted AI service failed or returned something unusable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ExternalServiceError):
    """
    The AI service (or its proxy) refused the request with HTTP 429.

    Carries the remaining/limit counters so the caller can reflect them.
    """

    def __init__(self, message: str, limit: int, remaining: int = 0):
        super().__init__(message, status_code=429)
        self.limit = limit
        self.remaining = remaining
