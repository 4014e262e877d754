"""
Domain exceptions for the question lifecycle engine.

Every error carries an error code, the HTTP status the API layer should use,
and a context dict (current state, offending field) so callers can decide
how to recover.
"""

from typing import Any, Optional


class EngineError(Exception):
    """Base class for recoverable engine errors."""

    status_code: int = 400
    error_code: str = "ENGINE_ERROR"

    def __init__(self, detail: str, context: Optional[dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.context = context or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "detail": self.detail,
            "context": self.context,
        }


class ClassificationUnavailable(EngineError):
    """The external classifier failed or timed out (transient)."""

    status_code = 503
    error_code = "CLASSIFICATION_UNAVAILABLE"

    def __init__(self, detail: str = "Intent classifier unavailable", context: Optional[dict] = None):
        super().__init__(detail, context)


class UnknownPillar(EngineError):
    """An upstream payload referenced a pillar outside the taxonomy."""

    status_code = 422
    error_code = "UNKNOWN_PILLAR"

    def __init__(self, value: Any, field: str = "pillars"):
        super().__init__(
            f"Unknown pillar: {value!r}",
            {"field": field, "value": value},
        )
        self.value = value


class InvalidTransition(EngineError):
    """Lifecycle move not legal from the question's current state."""

    status_code = 409
    error_code = "INVALID_TRANSITION"

    def __init__(self, question_id: str, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} question {question_id} in status '{current_status}'",
            {"question_id": question_id, "current_status": current_status, "action": action},
        )
        self.current_status = current_status
        self.action = action


class IncompleteAnswers(EngineError):
    """Clarification finalize attempted before every slot was answered."""

    status_code = 422
    error_code = "INCOMPLETE_ANSWERS"

    def __init__(self, question_id: str, missing_slots: list[int]):
        super().__init__(
            f"Question {question_id} still has {len(missing_slots)} unanswered clarifying question(s)",
            {"question_id": question_id, "missing_slots": missing_slots},
        )
        self.missing_slots = missing_slots


class NotFound(EngineError):
    """Unknown question or user id."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} not found: {identifier}",
            {"resource": resource, "id": identifier},
        )


class InvalidQuestion(EngineError):
    """Submitted question input is unusable (empty text, unknown channel)."""

    status_code = 422
    error_code = "INVALID_QUESTION"

    def __init__(self, detail: str, field: str, value: Any = None):
        super().__init__(detail, {"field": field, "value": value})
        self.field = field
