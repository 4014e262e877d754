"""
Intent Adapter: boundary to the external LLM classifier.

Raw classifier output is never trusted: every payload is validated into
`IntentClassification` or the `SetupComplete | SetupIncomplete` union here.
Unknown pillar names raise `UnknownPillar`; transport failures, timeouts and
unparseable output raise `ClassificationUnavailable`, which callers retry
through `call_with_retry`.
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar

import anthropic
import openai
import structlog
from pydantic import TypeAdapter, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from insight_engine.core.config import settings
from insight_engine.core.exceptions import ClassificationUnavailable
from insight_engine.core.llm_clients import LLMClient, LLMMessage, llm_client
from insight_engine.engine.pillars import ALL_PILLARS, PILLAR_DESCRIPTIONS, parse_pillar
from insight_engine.engine.schemas import (
    AnalysisBrief,
    ClarificationSetup,
    ClarifyingQuestion,
    IntentClassification,
    SetupComplete,
    SetupIncomplete,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_setup_adapter: TypeAdapter[ClarificationSetup] = TypeAdapter(ClarificationSetup)

# Errors from the LLM transport that are worth another attempt
TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    openai.OpenAIError,
    anthropic.AnthropicError,
)

DEFAULT_PLACEHOLDER = "Please specify"


# ==================== Prompts ====================

_PILLAR_LINES = "\n".join(f'- "{p.value}": {PILLAR_DESCRIPTIONS[p]}' for p in ALL_PILLARS)

CLASSIFICATION_SYSTEM_PROMPT = (
    "You are an expert analytics intent classifier. Analyze user questions and map them "
    "to relevant analytics pillars with confidence scores. Respond with valid JSON only."
)

CLASSIFICATION_USER_PROMPT = """Analyze this analytics question and classify it into relevant pillars.

Available pillars:
{pillars}

Question: "{question}"

Respond with JSON:
{{
    "pillars": ["pillar1", "pillar2"],
    "confidence": 0.0-1.0,
    "primary_pillar": "pillar1"
}}

Requirements:
- only use the pillar names listed above, spelled exactly
- only include pillars that are clearly relevant
- primary_pillar is the most relevant one
- if there is no clear intent, return low confidence and your best guess"""

SETUP_SYSTEM_PROMPT = """You are an analytics query parser.

Turn a product-analytics question into either (A) a fully specified analysis
request, or (B) a list of follow-up questions when details are missing.

1. Extract SUBJECT_COHORT, COMPARISON_COHORT, METRIC, TIME_WINDOW and an
   optional SUCCESS_CRITERION.
2. If any of the first four is missing, vague, or could be read two ways,
   the question is ambiguous.
3. When ambiguous, write concise clarifying questions a non-technical PM can
   answer quickly, one missing piece per question: metric first, then
   comparison cohort, then time window, then anything else.

Return JSON only:
{
  "is_ambiguous": true|false,
  "parsed_request": {
    "subject_cohort": "<string|null>",
    "comparison_cohort": "<string|null>",
    "metric": "<string|null>",
    "time_window": "<string|null>",
    "success_criterion": "<string|null>"
  },
  "clarifying_questions": [{"question": "<q1>", "placeholder": "<example answer>"}]
}"""

BRIEF_SYSTEM_PROMPT = (
    "You turn technical analysis requests into crystal-clear, board-room ready "
    "analysis briefs. Respond with valid JSON only."
)

BRIEF_USER_PROMPT = """User's question: "{question}"

Clarifying questions & answers:
{clarifications}

Analysis parameters: {parameters}

Produce exactly six fields in JSON:
{{
    "heading": "punchy title, at most 12 words",
    "description": "1-3 lines on what we are about to discover",
    "hypothesis": "H0 vs H1 in lay terms",
    "statistical_test": "test name and a plain-English reason",
    "user_cohort": "who is included, one sentence",
    "time_frame": "concrete window or cohort period"
}}"""

SUGGESTION_SYSTEM_PROMPT = (
    "You help users answer clarifying questions about their analytics inquiries. "
    "Give a concise, practical suggestion typical for business analytics, under 10 words."
)


# ==================== Payload validation ====================

def extract_json(content: str) -> Any:
    """Parse JSON from a model response, tolerating markdown code fences."""
    fenced = re.search(r"```(?:json)?\s*(\{[\s\S]*\})\s*```", content)
    raw = fenced.group(1) if fenced else content.strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ClassificationUnavailable(
            "Classifier returned unparseable output",
            {"error": str(e), "preview": content[:200]},
        ) from e


def normalize_intent(payload: Any) -> IntentClassification:
    """
    Validate a raw classifier payload into an IntentClassification.

    Confidence is clamped into [0, 1]; a missing pillar list falls back to the
    primary pillar and a missing primary pillar to the first listed pillar.

    Raises:
        UnknownPillar: a pillar name outside the taxonomy
        ClassificationUnavailable: the payload has no usable pillar at all
    """
    if not isinstance(payload, dict):
        raise ClassificationUnavailable("Classifier payload is not an object")

    raw_pillars = payload.get("pillars") or []
    if not isinstance(raw_pillars, list):
        raise ClassificationUnavailable("Classifier 'pillars' is not a list")
    pillars = [parse_pillar(p, field="pillars") for p in raw_pillars]

    raw_primary = payload.get("primary_pillar", payload.get("primaryPillar"))
    if raw_primary is not None:
        primary = parse_pillar(raw_primary, field="primary_pillar")
    elif pillars:
        primary = pillars[0]
    else:
        raise ClassificationUnavailable("Classifier payload names no pillar")

    try:
        confidence = float(payload.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5
    confidence = max(0.0, min(1.0, confidence))

    return IntentClassification(
        pillars=pillars or [primary],
        confidence=confidence,
        primary_pillar=primary,
    )


def parse_brief(payload: Any) -> AnalysisBrief:
    """Validate a brief payload; camelCase keys from older generators are accepted."""
    if not isinstance(payload, dict):
        raise ClassificationUnavailable("Brief payload is not an object")
    data = {
        "heading": payload.get("heading"),
        "description": payload.get("description"),
        "hypothesis": payload.get("hypothesis"),
        "statistical_test": payload.get("statistical_test", payload.get("statisticalTest")),
        "user_cohort": payload.get("user_cohort", payload.get("userCohort")),
        "time_frame": payload.get("time_frame", payload.get("timeFrame")),
    }
    try:
        return AnalysisBrief.model_validate(data)
    except ValidationError as e:
        raise ClassificationUnavailable("Brief payload is incomplete", {"error": str(e)}) from e


def _brief_from_parsed_request(request: dict) -> AnalysisBrief:
    subject = request.get("subject_cohort") or "All users"
    metric = request.get("metric") or "key metrics"
    comparison = request.get("comparison_cohort")
    window = request.get("time_window") or "Last 30 days"

    description = f"Analyze {metric} for {subject}"
    if comparison:
        description += f" vs {comparison}"
    description += f" over {window}"

    return AnalysisBrief(
        heading=f"{subject} {metric} Analysis",
        description=description,
        hypothesis=request.get("success_criterion") or "Identify significant patterns or differences",
        statistical_test="Comparative analysis" if comparison else "Descriptive analysis",
        user_cohort=subject,
        time_frame=window,
    )


def _clarifying_question(item: Any) -> ClarifyingQuestion:
    if isinstance(item, str):
        return ClarifyingQuestion(question=item, placeholder=DEFAULT_PLACEHOLDER)
    if isinstance(item, dict) and item.get("question"):
        return ClarifyingQuestion(
            question=str(item["question"]),
            placeholder=str(item.get("placeholder") or DEFAULT_PLACEHOLDER),
        )
    raise ClassificationUnavailable("Malformed clarifying question", {"item": repr(item)[:200]})


def parse_setup(payload: Any) -> ClarificationSetup:
    """
    Validate a setup payload into the Complete | Incomplete union.

    Accepts the tagged form ({"kind": ...}) and the parser form
    ({"is_ambiguous": ..., "parsed_request": ..., "clarifying_questions": ...}).
    """
    if not isinstance(payload, dict):
        raise ClassificationUnavailable("Setup payload is not an object")

    if "kind" in payload:
        try:
            return _setup_adapter.validate_python(payload)
        except ValidationError as e:
            raise ClassificationUnavailable("Setup payload failed validation", {"error": str(e)}) from e

    if "is_ambiguous" not in payload:
        raise ClassificationUnavailable("Setup payload has no ambiguity verdict")

    if payload["is_ambiguous"]:
        questions = [_clarifying_question(q) for q in payload.get("clarifying_questions") or []]
        if not questions:
            raise ClassificationUnavailable("Ambiguous setup without clarifying questions")
        return SetupIncomplete(questions=questions)

    return SetupComplete(brief=_brief_from_parsed_request(payload.get("parsed_request") or {}))


# ==================== Retry ====================

def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Classifier call failed, retrying",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


async def call_with_retry(fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
    """
    Await a classifier call, retrying ClassificationUnavailable with backoff.

    Classification is idempotent, so a retried success is indistinguishable
    from a first-attempt success. The last error is re-raised on exhaustion.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(ClassificationUnavailable),
        stop=stop_after_attempt(settings.classifier_max_attempts),
        wait=wait_exponential(
            multiplier=settings.classifier_backoff_min,
            min=settings.classifier_backoff_min,
            max=settings.classifier_backoff_max,
        ),
        before_sleep=_log_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await fn(*args, **kwargs)
    return result


# ==================== Adapters ====================

class BaseIntentAdapter(ABC):
    """Collaborator contract for classification and brief generation."""

    @abstractmethod
    async def classify_intent(self, text: str) -> IntentClassification:
        """Classify a question into pillars."""

    @abstractmethod
    async def generate_clarification_setup(self, text: str) -> ClarificationSetup:
        """Decide whether a question needs follow-up questions."""

    @abstractmethod
    async def generate_analysis_brief(
        self,
        text: str,
        clarifications: list[ClarifyingQuestion],
        parameters: Optional[dict] = None,
    ) -> AnalysisBrief:
        """Draft the analysis brief for a self-sufficient question."""

    @abstractmethod
    async def generate_suggested_answer(self, text: str, clarifying_question: str) -> str:
        """Suggest an answer for one clarifying question."""


class LLMIntentAdapter(BaseIntentAdapter):
    """Intent adapter backed by the configured LLM provider."""

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or llm_client

    async def _ask(
        self,
        system: str,
        user: str,
        json_mode: bool = True,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        messages = [
            LLMMessage(role="system", content=system),
            LLMMessage(role="user", content=user),
        ]
        try:
            response = await self.client.generate_fast(
                messages,
                json_mode=json_mode,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except TRANSIENT_ERRORS as e:
            raise ClassificationUnavailable(
                "LLM request failed",
                {"error_type": type(e).__name__, "error": str(e)},
            ) from e
        return response.content

    async def classify_intent(self, text: str) -> IntentClassification:
        logger.info("Classifying intent", question=text[:100])
        content = await self._ask(
            CLASSIFICATION_SYSTEM_PROMPT,
            CLASSIFICATION_USER_PROMPT.format(pillars=_PILLAR_LINES, question=text),
            temperature=0,
        )
        intent = normalize_intent(extract_json(content))
        logger.debug(
            "Intent classified",
            primary_pillar=intent.primary_pillar.value,
            confidence=intent.confidence,
        )
        return intent

    async def generate_clarification_setup(self, text: str) -> ClarificationSetup:
        content = await self._ask(SETUP_SYSTEM_PROMPT, text, temperature=0)
        return parse_setup(extract_json(content))

    async def generate_analysis_brief(
        self,
        text: str,
        clarifications: list[ClarifyingQuestion],
        parameters: Optional[dict] = None,
    ) -> AnalysisBrief:
        lines = [
            f"{i}. {c.question}\nAnswer: {c.answer or 'Not specified'}"
            for i, c in enumerate(clarifications, start=1)
        ]
        content = await self._ask(
            BRIEF_SYSTEM_PROMPT,
            BRIEF_USER_PROMPT.format(
                question=text,
                clarifications="\n\n".join(lines) or "None",
                parameters=json.dumps(parameters or {}, indent=2),
            ),
        )
        return parse_brief(extract_json(content))

    async def generate_suggested_answer(self, text: str, clarifying_question: str) -> str:
        content = await self._ask(
            SUGGESTION_SYSTEM_PROMPT,
            f'Original question: "{text}"\nClarifying question: "{clarifying_question}"\n\n'
            "Provide a brief, practical suggested answer:",
            json_mode=False,
            temperature=0.7,
            max_tokens=50,
        )
        return content.strip()
