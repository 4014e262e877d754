"""
Question lifecycle state machine.

    queued ──complete──> ready
      │
      └──cancel──> cancelled <──cancel── waiting-for-answers
                                              │
    queued <────────answer_clarifications─────┘

`ready` and `cancelled` are terminal.
"""

from enum import Enum
from typing import Any

from insight_engine.core.exceptions import InvalidTransition
from insight_engine.models.question import QuestionStatus


class LifecycleAction(str, Enum):
    """Operations that move a question between states."""
    ANSWER_CLARIFICATIONS = "answer_clarifications"
    COMPLETE = "complete"
    CANCEL = "cancel"


TRANSITIONS: dict[LifecycleAction, dict[QuestionStatus, QuestionStatus]] = {
    LifecycleAction.ANSWER_CLARIFICATIONS: {
        QuestionStatus.WAITING_FOR_ANSWERS: QuestionStatus.QUEUED,
    },
    LifecycleAction.COMPLETE: {
        QuestionStatus.QUEUED: QuestionStatus.READY,
    },
    LifecycleAction.CANCEL: {
        QuestionStatus.QUEUED: QuestionStatus.CANCELLED,
        QuestionStatus.WAITING_FOR_ANSWERS: QuestionStatus.CANCELLED,
    },
}

TERMINAL_STATUSES = frozenset({QuestionStatus.READY, QuestionStatus.CANCELLED})


def parse_status(value: Any) -> QuestionStatus:
    """Accept only the four lifecycle states; anything else is a bug upstream."""
    if isinstance(value, QuestionStatus):
        return value
    try:
        return QuestionStatus(value)
    except ValueError:
        raise ValueError(f"Unknown question status: {value!r}") from None


def can_transition(current: QuestionStatus | str, action: LifecycleAction) -> bool:
    return parse_status(current) in TRANSITIONS[action]


def next_status(question_id: str, current: QuestionStatus | str, action: LifecycleAction) -> QuestionStatus:
    """
    Resolve the target state of an action.

    Raises:
        InvalidTransition: if the action is not legal from the current state
    """
    status = parse_status(current)
    target = TRANSITIONS[action].get(status)
    if target is None:
        raise InvalidTransition(question_id, status.value, action.value)
    return target
