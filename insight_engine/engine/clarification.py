"""
Clarification Coordinator.

Owns the sub-protocol that turns an ambiguous question into a complete one:
asks the setup classifier whether follow-ups are needed, folds answers from
any channel (web form, chat reply) into the same ordered slot list, and
decides when the clarification is finished.
"""

from typing import Optional, Union

import structlog

from insight_engine.core.exceptions import ClassificationUnavailable
from insight_engine.engine.intent_adapter import BaseIntentAdapter, call_with_retry
from insight_engine.engine.schemas import ClarificationSetup, ClarifyingQuestion

logger = structlog.get_logger(__name__)

# Positional list aligned to the slots, or explicit question -> answer pairs
Answers = Union[list[str], dict[str, str]]

SUGGESTION_FALLBACK = "Please specify..."

# Chat replies shorter than this are acknowledgements, not answers
MIN_CHAT_ANSWER_LENGTH = 6


def missing_slots(slots: list[ClarifyingQuestion]) -> list[int]:
    """Indexes of clarifying questions that still lack a non-empty answer."""
    return [i for i, slot in enumerate(slots) if not slot.is_answered]


def merge_answers(slots: list[ClarifyingQuestion], answers: Answers) -> list[ClarifyingQuestion]:
    """
    Return a copy of the slots with the given answers filled in.

    Blank answers never overwrite an existing answer. Positional answers past
    the last slot and pairs naming an unknown question are ignored.
    """
    merged = [slot.model_copy() for slot in slots]

    if isinstance(answers, dict):
        by_question = {slot.question.strip(): i for i, slot in enumerate(merged)}
        for question, answer in answers.items():
            index = by_question.get(question.strip())
            if index is None:
                logger.warning("Answer for unknown clarifying question ignored", question=question[:100])
                continue
            if answer and answer.strip():
                merged[index].answer = answer.strip()
        return merged

    if len(answers) > len(merged):
        logger.warning(
            "Extra clarification answers ignored",
            slots=len(merged),
            answers=len(answers),
        )

    for slot, answer in zip(merged, answers):
        if answer and answer.strip():
            slot.answer = answer.strip()
    return merged


def same_answers(slots: list[ClarifyingQuestion], answers: Answers) -> bool:
    """True when applying `answers` would leave already-complete slots unchanged."""
    if missing_slots(slots):
        return False
    merged = merge_answers(slots, answers)
    return [s.answer for s in merged] == [s.answer for s in slots]


def answers_from_chat_reply(message: str) -> list[str]:
    """
    Split a free-text chat reply into positional answers, one per line.

    Mentions, links and very short lines are dropped.
    """
    answers = []
    for line in message.splitlines():
        line = line.strip()
        if len(line) < MIN_CHAT_ANSWER_LENGTH:
            continue
        if line.startswith("@") or "http" in line:
            continue
        answers.append(line)
    return answers


def text_with_context(text: str, slots: list[ClarifyingQuestion]) -> str:
    """Original question plus the collected answers, used for reclassification."""
    answered = [s for s in slots if s.is_answered]
    if not answered:
        return text
    lines = [f"- {s.question} {s.answer}" for s in answered]
    return f"{text}\n\nAdditional context:\n" + "\n".join(lines)


class ClarificationCoordinator:
    """Branches the lifecycle on question completeness and shepherds answers."""

    def __init__(self, adapter: BaseIntentAdapter):
        self.adapter = adapter

    async def needs_clarification(self, text: str) -> ClarificationSetup:
        """
        Ask the setup classifier whether the question is self-sufficient.

        Raises:
            ClassificationUnavailable: when the setup classifier keeps failing
        """
        setup = await call_with_retry(self.adapter.generate_clarification_setup, text)
        logger.info("Clarification setup resolved", kind=setup.kind)
        return setup

    async def suggest_answer(self, question_text: str, clarifying_question: str) -> str:
        """Advisory suggestion for one slot; never blocks progress."""
        try:
            suggestion: Optional[str] = await self.adapter.generate_suggested_answer(
                question_text, clarifying_question
            )
        except ClassificationUnavailable as e:
            logger.warning("Suggested answer unavailable", error=str(e))
            return SUGGESTION_FALLBACK
        return suggestion.strip() if suggestion and suggestion.strip() else SUGGESTION_FALLBACK
