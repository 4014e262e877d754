"""
Question Lifecycle Service.

Owns every mutation of a Question row and drives the Weight Store and the
Clarification Coordinator around it. Classification calls run outside the
per-user lock; the lifecycle write and its weight update commit together
under the lock; subscribers are notified after commit.
"""

import uuid
from typing import Any, Optional, Sequence, Union

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insight_engine.core.database import get_db_context
from insight_engine.core.exceptions import (
    ClassificationUnavailable,
    EngineError,
    IncompleteAnswers,
    InvalidQuestion,
    InvalidTransition,
    NotFound,
    UnknownPillar,
)
from insight_engine.core.observability import capture_exception, set_question_context
from insight_engine.engine.clarification import (
    Answers,
    ClarificationCoordinator,
    answers_from_chat_reply,
    merge_answers,
    missing_slots,
    same_answers,
    text_with_context,
)
from insight_engine.engine.intent_adapter import BaseIntentAdapter, LLMIntentAdapter, call_with_retry
from insight_engine.engine.lifecycle import LifecycleAction, next_status
from insight_engine.engine.schemas import (
    AnalysisBrief,
    AnalysisResultRecord,
    ClarifyingQuestion,
    IntentClassification,
    QuestionRecord,
    SetupComplete,
)
from insight_engine.engine.weights import PillarWeights
from insight_engine.models.question import (
    AnalysisResult,
    Question,
    QuestionSource,
    QuestionStatus,
)
from insight_engine.services.event_hub import EventHub, LifecycleEvent, event_hub
from insight_engine.services.weight_store import WeightStore
from insight_engine.utils.timeutils import as_utc, utcnow
from insight_engine.utils.validators import sanitize_user_input, validate_source

logger = structlog.get_logger(__name__)

ClarificationInput = Union[ClarifyingQuestion, dict[str, Any]]


def to_record(question: Question, result: Optional[AnalysisResult] = None) -> QuestionRecord:
    """Build the read model from ORM rows."""
    return QuestionRecord(
        id=question.id,
        user_id=question.user_id,
        text=question.text,
        source=question.source,
        status=question.status,
        created_at=as_utc(question.created_at),
        updated_at=as_utc(question.updated_at),
        intent=IntentClassification.model_validate(question.intent) if question.intent else None,
        clarifying_questions=(
            [ClarifyingQuestion.model_validate(c) for c in question.clarifying_questions]
            if question.clarifying_questions is not None
            else None
        ),
        clarification_finalized_at=as_utc(question.clarification_finalized_at),
        analysis_brief=(
            AnalysisBrief.model_validate(question.analysis_brief) if question.analysis_brief else None
        ),
        result=(
            AnalysisResultRecord(
                question_id=result.question_id,
                payload=result.payload,
                created_at=as_utc(result.created_at),
            )
            if result is not None
            else None
        ),
    )


def _slots(question: Question) -> list[ClarifyingQuestion]:
    return [ClarifyingQuestion.model_validate(c) for c in question.clarifying_questions or []]


def _dump_slots(slots: Sequence[ClarifyingQuestion]) -> list[dict]:
    return [slot.model_dump() for slot in slots]


class QuestionService:
    """
    Service for the question lifecycle.

    Handles:
    - Submission, with or without clarification
    - Answer collection from the web form and chat replies
    - Completion and cancellation
    - Read helpers for dashboards and chat integrations
    """

    def __init__(
        self,
        adapter: Optional[BaseIntentAdapter] = None,
        weight_store: Optional[WeightStore] = None,
        hub: Optional[EventHub] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.adapter = adapter or LLMIntentAdapter()
        self.session_factory = session_factory
        self.weights = weight_store or WeightStore(session_factory=session_factory)
        self.hub = hub or event_hub
        self.clarifier = ClarificationCoordinator(self.adapter)

    # ==================== Collaborator calls (outside the lock) ====================

    async def _classify(self, text: str, user_id: str) -> Optional[IntentClassification]:
        """Classify with retry; None once the classifier is exhausted or returns junk."""
        try:
            return await call_with_retry(self.adapter.classify_intent, text)
        except (ClassificationUnavailable, UnknownPillar) as e:
            logger.error(
                "Intent classification failed, storing question without intent",
                user_id=user_id,
                error_code=e.error_code,
                error=e.detail,
            )
            capture_exception(e, {"user_id": user_id, "stage": "classify_intent", **e.context})
            return None

    async def _brief(
        self,
        text: str,
        clarifications: Sequence[ClarifyingQuestion],
        parameters: Optional[dict],
    ) -> Optional[AnalysisBrief]:
        """Best-effort brief; a failure leaves the brief empty."""
        try:
            return await self.adapter.generate_analysis_brief(text, list(clarifications), parameters)
        except EngineError as e:
            logger.warning("Analysis brief generation failed", error_code=e.error_code, error=e.detail)
            return None

    # ==================== Notification (after commit) ====================

    def _notify(
        self,
        event: str,
        question: Question,
        weights: PillarWeights,
        weights_updated: bool = False,
    ) -> None:
        try:
            self.hub.publish(
                LifecycleEvent(
                    event=event,
                    user_id=question.user_id,
                    question_id=question.id,
                    status=question.status,
                    weights=weights.as_dict(),
                    intent=question.intent,
                    weights_updated=weights_updated,
                )
            )
        except Exception as e:
            logger.warning("Lifecycle notification failed", event_name=event, question_id=question.id, error=str(e))

    # ==================== Persistence helpers ====================

    async def _load(self, session: AsyncSession, question_id: str) -> Question:
        result = await session.execute(select(Question).where(Question.id == question_id))
        question = result.scalar_one_or_none()
        if question is None:
            raise NotFound("Question", question_id)
        return question

    async def _result_for(self, session: AsyncSession, question_id: str) -> Optional[AnalysisResult]:
        result = await session.execute(
            select(AnalysisResult).where(AnalysisResult.question_id == question_id)
        )
        return result.scalar_one_or_none()

    # ==================== Transitions ====================

    async def submit(
        self,
        user_id: str,
        text: str,
        source: Union[QuestionSource, str] = QuestionSource.WEB,
        clarifications: Optional[Sequence[ClarificationInput]] = None,
        analysis_parameters: Optional[dict] = None,
        db: Optional[AsyncSession] = None,
    ) -> QuestionRecord:
        """
        Submit a new question.

        Args:
            user_id: Owner of the question
            text: Free-text question
            source: Channel the question came from (web or slack)
            clarifications: Clarifying questions the caller already answered
            analysis_parameters: Extra parameters passed to the brief generator
            db: Optional database session

        Returns:
            The persisted question; always created, even if classification fails
        """
        text = sanitize_user_input(text)
        if not text:
            raise InvalidQuestion("Question text is empty", "text")
        source = validate_source(source.value if isinstance(source, QuestionSource) else source)

        pre_answered = [
            c if isinstance(c, ClarifyingQuestion) else ClarifyingQuestion.model_validate(c)
            for c in clarifications or []
        ]

        status = QuestionStatus.QUEUED
        intent: Optional[IntentClassification] = None
        brief: Optional[AnalysisBrief] = None
        slots: Optional[list[ClarifyingQuestion]] = None

        if pre_answered and not missing_slots(pre_answered):
            slots = pre_answered
            intent = await self._classify(text_with_context(text, slots), user_id)
            brief = await self._brief(text, slots, analysis_parameters)
        elif any(c.is_answered for c in pre_answered):
            # Partly answered up front; collect the rest before classifying
            status = QuestionStatus.WAITING_FOR_ANSWERS
            slots = pre_answered
        else:
            try:
                setup = await self.clarifier.needs_clarification(text)
            except (ClassificationUnavailable, UnknownPillar) as e:
                logger.warning("Clarification setup unavailable, queueing directly", user_id=user_id, error=e.detail)
                setup = None

            if setup is not None and setup.kind == "incomplete":
                status = QuestionStatus.WAITING_FOR_ANSWERS
                slots = [ClarifyingQuestion(question=q.question, placeholder=q.placeholder) for q in setup.questions]
            else:
                intent = await self._classify(text, user_id)
                if isinstance(setup, SetupComplete):
                    brief = setup.brief

        async def _submit(session: AsyncSession) -> tuple[Question, PillarWeights, bool]:
            async with self.weights.locks.hold(user_id):
                now = utcnow()
                question = Question(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    text=text,
                    source=source.value,
                    status=status.value,
                    intent=intent.model_dump(mode="json") if intent else None,
                    clarifying_questions=_dump_slots(slots) if slots is not None else None,
                    clarification_finalized_at=now if slots and not missing_slots(slots) else None,
                    analysis_brief=brief.model_dump() if brief else None,
                    created_at=now,
                    updated_at=now,
                )
                session.add(question)

                if intent is not None:
                    weights = await self.weights.apply_intent(session, user_id, intent, now=now)
                else:
                    weights = await self.weights.snapshot(session, user_id, now=now)

                await session.commit()
                await session.refresh(question)
                return question, weights, intent is not None

        if db:
            question, weights, updated = await _submit(db)
        else:
            async with get_db_context(self.session_factory) as session:
                question, weights, updated = await _submit(session)

        set_question_context(user_id, question.id, question.status)
        logger.info(
            "Question submitted",
            question_id=question.id,
            user_id=user_id,
            source=question.source,
            status=question.status,
            classified=updated,
        )
        self._notify("question_submitted", question, weights, weights_updated=updated)
        return to_record(question)

    async def answer_clarifications(
        self,
        question_id: str,
        answers: Answers,
        finalize: bool = True,
        analysis_parameters: Optional[dict] = None,
        db: Optional[AsyncSession] = None,
    ) -> QuestionRecord:
        """
        Fold answers into a waiting question's clarifying slots.

        Once every slot holds a non-empty answer the question is reclassified
        with the answers as context, the weights are updated once and the
        question moves to queued. Replaying the answers of an already
        finalized clarification returns the question unchanged.

        Raises:
            NotFound: unknown question
            InvalidTransition: the question is not waiting for answers
            IncompleteAnswers: finalize requested while slots are still empty
        """
        async def _answer(session: AsyncSession) -> QuestionRecord:
            question = await self._load(session, question_id)
            slots = _slots(question)

            if question.status != QuestionStatus.WAITING_FOR_ANSWERS.value:
                if question.clarification_finalized_at and same_answers(slots, answers):
                    logger.info("Clarification already finalized, ignoring replay", question_id=question_id)
                    return to_record(question, await self._result_for(session, question_id))
                raise InvalidTransition(question_id, question.status, LifecycleAction.ANSWER_CLARIFICATIONS.value)

            merged = merge_answers(slots, answers)
            missing = missing_slots(merged)

            if missing:
                if finalize:
                    raise IncompleteAnswers(question_id, missing)
                return await self._save_partial(session, question, answers)

            # Release the read transaction while the classifier runs
            await session.commit()
            context_text = text_with_context(question.text, merged)
            intent = await self._classify(context_text, question.user_id)
            brief = None
            if question.analysis_brief is None:
                brief = await self._brief(question.text, merged, analysis_parameters)

            async with self.weights.locks.hold(question.user_id):
                await session.refresh(question, with_for_update=True)
                fresh = _slots(question)

                if question.status != QuestionStatus.WAITING_FOR_ANSWERS.value:
                    if question.clarification_finalized_at and same_answers(fresh, answers):
                        logger.info("Clarification finalized concurrently, ignoring", question_id=question_id)
                        return to_record(question)
                    raise InvalidTransition(
                        question_id, question.status, LifecycleAction.ANSWER_CLARIFICATIONS.value
                    )

                merged = merge_answers(fresh, answers)
                missing = missing_slots(merged)
                if missing:
                    raise IncompleteAnswers(question_id, missing)

                now = utcnow()
                question.clarifying_questions = _dump_slots(merged)
                question.clarification_finalized_at = now
                question.status = next_status(
                    question_id, question.status, LifecycleAction.ANSWER_CLARIFICATIONS
                ).value
                question.intent = intent.model_dump(mode="json") if intent else None
                if brief is not None:
                    question.analysis_brief = brief.model_dump()
                question.updated_at = now

                if intent is not None:
                    weights = await self.weights.apply_intent(session, question.user_id, intent, now=now)
                else:
                    weights = await self.weights.snapshot(session, question.user_id, now=now)

                await session.commit()
                await session.refresh(question)

            logger.info(
                "Clarification completed",
                question_id=question_id,
                user_id=question.user_id,
                answers=len(merged),
                classified=intent is not None,
            )
            self._notify("clarification_completed", question, weights, weights_updated=intent is not None)
            return to_record(question)

        if db:
            return await _answer(db)

        async with get_db_context(self.session_factory) as session:
            return await _answer(session)

    async def _save_partial(self, session: AsyncSession, question: Question, answers: Answers) -> QuestionRecord:
        """Store answers collected so far; the question stays waiting."""
        async with self.weights.locks.hold(question.user_id):
            await session.refresh(question, with_for_update=True)
            if question.status != QuestionStatus.WAITING_FOR_ANSWERS.value:
                raise InvalidTransition(question.id, question.status, LifecycleAction.ANSWER_CLARIFICATIONS.value)

            merged = merge_answers(_slots(question), answers)
            question.clarifying_questions = _dump_slots(merged)
            question.updated_at = utcnow()
            await session.commit()
            await session.refresh(question)

        logger.info(
            "Partial clarification answers saved",
            question_id=question.id,
            missing=len(missing_slots(merged)),
        )
        return to_record(question)

    async def answer_from_chat(
        self,
        question_id: str,
        message: str,
        db: Optional[AsyncSession] = None,
    ) -> QuestionRecord:
        """Apply a free-text chat reply; completes the clarification once every slot is filled."""
        answers = answers_from_chat_reply(message)
        logger.debug("Chat reply parsed", question_id=question_id, answers=len(answers))
        return await self.answer_clarifications(question_id, answers, finalize=False, db=db)

    async def complete(
        self,
        question_id: str,
        result: dict[str, Any],
        db: Optional[AsyncSession] = None,
    ) -> QuestionRecord:
        """
        Attach the analysis result and mark the question ready.

        Raises:
            NotFound: unknown question
            InvalidTransition: the question is not queued
        """
        async def _complete(session: AsyncSession) -> QuestionRecord:
            question = await self._load(session, question_id)

            async with self.weights.locks.hold(question.user_id):
                await session.refresh(question, with_for_update=True)
                target = next_status(question_id, question.status, LifecycleAction.COMPLETE)

                now = utcnow()
                analysis = AnalysisResult(
                    id=str(uuid.uuid4()),
                    question_id=question_id,
                    payload=result,
                    created_at=now,
                )
                session.add(analysis)
                question.status = target.value
                question.updated_at = now

                weights = await self.weights.snapshot(session, question.user_id, now=now)
                await session.commit()
                await session.refresh(question)

            logger.info("Question ready", question_id=question_id, user_id=question.user_id)
            self._notify("question_ready", question, weights)
            return to_record(question, analysis)

        if db:
            return await _complete(db)

        async with get_db_context(self.session_factory) as session:
            return await _complete(session)

    async def cancel(self, question_id: str, db: Optional[AsyncSession] = None) -> QuestionRecord:
        """
        Soft-delete a question. The row is kept for audit.

        Raises:
            NotFound: unknown question
            InvalidTransition: the question is already ready or cancelled
        """
        async def _cancel(session: AsyncSession) -> QuestionRecord:
            question = await self._load(session, question_id)

            async with self.weights.locks.hold(question.user_id):
                await session.refresh(question, with_for_update=True)
                target = next_status(question_id, question.status, LifecycleAction.CANCEL)

                now = utcnow()
                question.status = target.value
                question.updated_at = now

                weights = await self.weights.snapshot(session, question.user_id, now=now)
                await session.commit()
                await session.refresh(question)

            logger.info("Question cancelled", question_id=question_id, user_id=question.user_id)
            self._notify("question_cancelled", question, weights)
            return to_record(question)

        if db:
            return await _cancel(db)

        async with get_db_context(self.session_factory) as session:
            return await _cancel(session)

    # ==================== Reads ====================

    async def get_question(self, question_id: str, db: Optional[AsyncSession] = None) -> QuestionRecord:
        """Get a question by id, including its analysis result when ready."""
        async def _get(session: AsyncSession) -> QuestionRecord:
            question = await self._load(session, question_id)
            return to_record(question, await self._result_for(session, question_id))

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)

    async def list_active(
        self,
        user_id: str,
        limit: int = 50,
        db: Optional[AsyncSession] = None,
    ) -> list[QuestionRecord]:
        """Most recent non-cancelled questions for a user, newest first."""
        async def _list(session: AsyncSession) -> list[QuestionRecord]:
            stmt = (
                select(Question)
                .where(
                    Question.user_id == user_id,
                    Question.status != QuestionStatus.CANCELLED.value,
                )
                .order_by(Question.created_at.desc())
                .limit(limit)
            )
            questions = list((await session.execute(stmt)).scalars().all())

            ready_ids = [q.id for q in questions if q.status == QuestionStatus.READY.value]
            results: dict[str, AnalysisResult] = {}
            if ready_ids:
                rows = await session.execute(
                    select(AnalysisResult).where(AnalysisResult.question_id.in_(ready_ids))
                )
                results = {r.question_id: r for r in rows.scalars().all()}

            return [to_record(q, results.get(q.id)) for q in questions]

        if db:
            return await _list(db)

        async with get_db_context(self.session_factory) as session:
            return await _list(session)

    async def pending_clarification(
        self,
        user_id: str,
        source: Union[QuestionSource, str] = QuestionSource.SLACK,
        db: Optional[AsyncSession] = None,
    ) -> Optional[QuestionRecord]:
        """Most recent question waiting for answers on a channel; used to route chat replies."""
        source = validate_source(source.value if isinstance(source, QuestionSource) else source)

        async def _get(session: AsyncSession) -> Optional[QuestionRecord]:
            stmt = (
                select(Question)
                .where(
                    Question.user_id == user_id,
                    Question.source == source.value,
                    Question.status == QuestionStatus.WAITING_FOR_ANSWERS.value,
                )
                .order_by(Question.created_at.desc())
                .limit(1)
            )
            question = (await session.execute(stmt)).scalar_one_or_none()
            return to_record(question) if question else None

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)

    async def suggest_answer(
        self,
        question_id: str,
        slot_index: int,
        db: Optional[AsyncSession] = None,
    ) -> str:
        """
        Advisory answer for one clarifying question.

        Raises:
            NotFound: unknown question or slot index
        """
        record = await self.get_question(question_id, db=db)
        slots = record.clarifying_questions or []
        if not 0 <= slot_index < len(slots):
            raise NotFound("Clarifying question", f"{question_id}#{slot_index}")
        return await self.clarifier.suggest_answer(record.text, slots[slot_index].question)

    async def current_weights(self, user_id: str, db: Optional[AsyncSession] = None) -> PillarWeights:
        return await self.weights.current_weights(user_id, db=db)


# Global service instance
question_service = QuestionService()
