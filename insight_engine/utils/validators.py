"""
Input validation for question submission.
"""

import re

from insight_engine.core.exceptions import InvalidQuestion
from insight_engine.models.question import QuestionSource

MAX_QUESTION_LENGTH = 4000


def validate_source(source: str) -> QuestionSource:
    """Map a channel name onto the closed source enum."""
    try:
        return QuestionSource(source.lower().strip())
    except ValueError:
        raise InvalidQuestion(f"Unsupported question source: {source!r}", "source", source) from None


def sanitize_user_input(text: str, max_length: int = MAX_QUESTION_LENGTH) -> str:
    """
    Sanitize question text.

    - Truncates to max length
    - Removes control characters
    - Normalizes whitespace
    """
    text = text[:max_length]

    # Remove control characters except newlines and tabs
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]', '', text)

    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n{3,}', '\n\n', text)

    return text.strip()
