"""
Question API routes.

Endpoints for submitting questions and driving their lifecycle.
"""

from typing import Any, Literal, Optional, Union

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from insight_engine.api.deps import get_current_user_id, get_question_service
from insight_engine.core.exceptions import NotFound
from insight_engine.engine.schemas import ClarifyingQuestion, QuestionRecord
from insight_engine.services.question_service import QuestionService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/questions", tags=["questions"])


class SubmitQuestionRequest(BaseModel):
    """Request body for a new question."""
    text: str = Field(..., min_length=1, max_length=4000)
    source: Literal["web", "slack"] = "web"
    clarifications: Optional[list[ClarifyingQuestion]] = None
    analysis_parameters: Optional[dict[str, Any]] = None


class AnswerClarificationsRequest(BaseModel):
    """Answers aligned to the clarifying questions, or question -> answer pairs."""
    answers: Union[list[str], dict[str, str]]
    finalize: bool = True


class ChatReplyRequest(BaseModel):
    """A free-text chat reply, one answer per line."""
    message: str = Field(..., min_length=1)


class SuggestedAnswerRequest(BaseModel):
    slot_index: int = Field(..., ge=0)


class SuggestedAnswerResponse(BaseModel):
    question_id: str
    slot_index: int
    suggestion: str


class CompleteQuestionRequest(BaseModel):
    """Analysis result payload from the analysis pipeline."""
    result: dict[str, Any]


class QuestionListResponse(BaseModel):
    questions: list[QuestionRecord]
    total: int


async def _owned(service: QuestionService, question_id: str, user_id: str) -> QuestionRecord:
    """Load a question, hiding other users' questions behind a 404."""
    record = await service.get_question(question_id)
    if record.user_id != user_id:
        raise NotFound("Question", question_id)
    return record


@router.post("", response_model=QuestionRecord, status_code=status.HTTP_201_CREATED)
async def submit_question(
    request: SubmitQuestionRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> QuestionRecord:
    """
    Submit a new question.

    The question is always stored: either queued (classified, weights
    updated) or waiting for answers to its clarifying questions.
    """
    return await service.submit(
        user_id=user_id,
        text=request.text,
        source=request.source,
        clarifications=request.clarifications,
        analysis_parameters=request.analysis_parameters,
    )


@router.get("", response_model=QuestionListResponse)
async def list_questions(
    user_id: str = Depends(get_current_user_id),
    limit: int = Query(50, ge=1, le=200),
    service: QuestionService = Depends(get_question_service),
) -> QuestionListResponse:
    """List the user's active (non-cancelled) questions, newest first."""
    questions = await service.list_active(user_id, limit=limit)
    return QuestionListResponse(questions=questions, total=len(questions))


@router.get("/pending", response_model=Optional[QuestionRecord])
async def pending_clarification(
    source: Literal["web", "slack"] = Query("slack"),
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> Optional[QuestionRecord]:
    """Most recent question on a channel still waiting for answers."""
    return await service.pending_clarification(user_id, source)


@router.get("/{question_id}", response_model=QuestionRecord)
async def get_question(
    question_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> QuestionRecord:
    return await _owned(service, question_id, user_id)


@router.post("/{question_id}/answers", response_model=QuestionRecord)
async def answer_clarifications(
    question_id: str,
    request: AnswerClarificationsRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> QuestionRecord:
    """Answer clarifying questions from the web form."""
    await _owned(service, question_id, user_id)
    return await service.answer_clarifications(
        question_id,
        request.answers,
        finalize=request.finalize,
    )


@router.post("/{question_id}/answers/chat", response_model=QuestionRecord)
async def answer_from_chat(
    question_id: str,
    request: ChatReplyRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> QuestionRecord:
    """Answer clarifying questions from a chat reply."""
    await _owned(service, question_id, user_id)
    return await service.answer_from_chat(question_id, request.message)


@router.post("/{question_id}/suggested-answer", response_model=SuggestedAnswerResponse)
async def suggest_answer(
    question_id: str,
    request: SuggestedAnswerRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> SuggestedAnswerResponse:
    await _owned(service, question_id, user_id)
    suggestion = await service.suggest_answer(question_id, request.slot_index)
    return SuggestedAnswerResponse(
        question_id=question_id,
        slot_index=request.slot_index,
        suggestion=suggestion,
    )


@router.post("/{question_id}/complete", response_model=QuestionRecord)
async def complete_question(
    question_id: str,
    request: CompleteQuestionRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> QuestionRecord:
    """Attach the analysis result; only queued questions can complete."""
    await _owned(service, question_id, user_id)
    return await service.complete(question_id, request.result)


@router.delete("/{question_id}", response_model=QuestionRecord)
async def cancel_question(
    question_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
) -> QuestionRecord:
    """Cancel a question. The record is kept but hidden from listings."""
    await _owned(service, question_id, user_id)
    record = await service.cancel(question_id)
    logger.info("Question cancelled via API", question_id=question_id, user_id=user_id)
    return record
