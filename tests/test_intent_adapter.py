"""
Intent adapter tests: payload validation, retry, and the LLM-backed adapter.
"""

import asyncio
import json

import pytest

from insight_engine.core.exceptions import ClassificationUnavailable, UnknownPillar
from insight_engine.core.llm_clients import LLMProvider, LLMResponse
from insight_engine.engine.intent_adapter import (
    LLMIntentAdapter,
    call_with_retry,
    extract_json,
    normalize_intent,
    parse_brief,
    parse_setup,
)
from insight_engine.engine.pillars import Pillar
from insight_engine.engine.schemas import SetupComplete, SetupIncomplete


class ScriptedLLM:
    """Stands in for LLMClient; returns queued contents or raises queued errors."""

    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.calls = []

    async def generate_fast(self, messages, json_mode=False, temperature=None, max_tokens=None):
        self.calls.append({"messages": messages, "json_mode": json_mode})
        output = self.outputs.pop(0)
        if isinstance(output, BaseException):
            raise output
        return LLMResponse(content=output, model="test-model", provider=LLMProvider.OPENAI)


# ==================== normalize_intent ====================

def test_normalize_intent_valid_payload():
    result = normalize_intent(
        {"pillars": ["retention", "engagement"], "confidence": 0.85, "primary_pillar": "retention"}
    )
    assert result.pillars == [Pillar.RETENTION, Pillar.ENGAGEMENT]
    assert result.primary_pillar is Pillar.RETENTION
    assert result.confidence == 0.85


def test_normalize_intent_accepts_camel_case_and_alias():
    result = normalize_intent({"pillars": ["ua"], "confidence": 0.6, "primaryPillar": "ua"})
    assert result.primary_pillar is Pillar.USER_ACQUISITION


def test_normalize_intent_clamps_confidence():
    assert normalize_intent({"pillars": ["store"], "confidence": 1.7}).confidence == 1.0
    assert normalize_intent({"pillars": ["store"], "confidence": -2}).confidence == 0.0


def test_normalize_intent_fills_missing_pillars_from_primary():
    result = normalize_intent({"pillars": [], "confidence": 0.4, "primary_pillar": "social"})
    assert result.pillars == [Pillar.SOCIAL]


def test_normalize_intent_rejects_unknown_pillar():
    with pytest.raises(UnknownPillar) as exc_info:
        normalize_intent({"pillars": ["retention", "revenue"], "confidence": 0.9})
    assert exc_info.value.context["value"] == "revenue"


def test_normalize_intent_rejects_unknown_primary():
    with pytest.raises(UnknownPillar) as exc_info:
        normalize_intent({"pillars": ["retention"], "confidence": 0.9, "primary_pillar": "growth"})
    assert exc_info.value.context["field"] == "primary_pillar"


def test_normalize_intent_without_any_pillar_is_unavailable():
    with pytest.raises(ClassificationUnavailable):
        normalize_intent({"confidence": 0.9})


# ==================== parse_setup ====================

def test_parse_setup_incomplete_parser_form():
    setup = parse_setup(
        {
            "is_ambiguous": True,
            "parsed_request": {"metric": None},
            "clarifying_questions": [
                {"question": "Over what time window?", "placeholder": "e.g., 30 days"},
                "Which cohort?",
            ],
        }
    )
    assert isinstance(setup, SetupIncomplete)
    assert [q.question for q in setup.questions] == ["Over what time window?", "Which cohort?"]
    assert setup.questions[0].placeholder == "e.g., 30 days"
    assert all(q.answer is None for q in setup.questions)


def test_parse_setup_complete_parser_form_builds_brief():
    setup = parse_setup(
        {
            "is_ambiguous": False,
            "parsed_request": {
                "subject_cohort": "Paying users",
                "comparison_cohort": "Free users",
                "metric": "D7 retention",
                "time_window": "Last 4 weeks",
            },
        }
    )
    assert isinstance(setup, SetupComplete)
    assert setup.brief.user_cohort == "Paying users"
    assert setup.brief.time_frame == "Last 4 weeks"
    assert setup.brief.statistical_test == "Comparative analysis"


def test_parse_setup_tagged_form():
    setup = parse_setup({"kind": "incomplete", "questions": [{"question": "Which metric?"}]})
    assert isinstance(setup, SetupIncomplete)


def test_parse_setup_ambiguous_without_questions_is_unavailable():
    with pytest.raises(ClassificationUnavailable):
        parse_setup({"is_ambiguous": True, "clarifying_questions": []})


def test_parse_setup_tagged_form_with_empty_questions_is_unavailable():
    with pytest.raises(ClassificationUnavailable):
        parse_setup({"kind": "incomplete", "questions": []})


def test_parse_brief_accepts_camel_case():
    brief = parse_brief(
        {
            "heading": "h",
            "description": "d",
            "hypothesis": "H0",
            "statisticalTest": "t-test",
            "userCohort": "all",
            "timeFrame": "30d",
        }
    )
    assert brief.statistical_test == "t-test"


def test_extract_json_from_fenced_block():
    content = 'Here you go:\n```json\n{"pillars": ["store"]}\n```'
    assert extract_json(content) == {"pillars": ["store"]}


def test_extract_json_garbage_is_unavailable():
    with pytest.raises(ClassificationUnavailable):
        extract_json("not json at all")


# ==================== call_with_retry ====================

@pytest.mark.asyncio
async def test_retry_transient_failure_matches_first_attempt_success():
    expected = normalize_intent({"pillars": ["retention"], "confidence": 0.9})
    attempts = {"count": 0}

    async def flaky(text):
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise ClassificationUnavailable("blip")
        return expected

    async def steady(text):
        return expected

    assert await call_with_retry(flaky, "q") == await call_with_retry(steady, "q")
    assert attempts["count"] == 2


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts():
    attempts = {"count": 0}

    async def down(text):
        attempts["count"] += 1
        raise ClassificationUnavailable("down")

    with pytest.raises(ClassificationUnavailable):
        await call_with_retry(down, "q")
    assert attempts["count"] == 3


@pytest.mark.asyncio
async def test_retry_does_not_retry_unknown_pillar():
    attempts = {"count": 0}

    async def junk(text):
        attempts["count"] += 1
        raise UnknownPillar("revenue")

    with pytest.raises(UnknownPillar):
        await call_with_retry(junk, "q")
    assert attempts["count"] == 1


# ==================== LLMIntentAdapter ====================

@pytest.mark.asyncio
async def test_llm_adapter_classifies_in_json_mode():
    llm = ScriptedLLM(json.dumps({"pillars": ["retention"], "confidence": 0.9, "primary_pillar": "retention"}))
    adapter = LLMIntentAdapter(client=llm)

    result = await adapter.classify_intent("What's driving churn?")

    assert result.primary_pillar is Pillar.RETENTION
    assert llm.calls[0]["json_mode"] is True
    assert "What's driving churn?" in llm.calls[0]["messages"][1].content


@pytest.mark.asyncio
async def test_llm_adapter_timeout_is_unavailable():
    adapter = LLMIntentAdapter(client=ScriptedLLM(asyncio.TimeoutError()))
    with pytest.raises(ClassificationUnavailable) as exc_info:
        await adapter.classify_intent("q")
    assert exc_info.value.context["error_type"] == "TimeoutError"


@pytest.mark.asyncio
async def test_llm_adapter_unknown_pillar_propagates():
    llm = ScriptedLLM(json.dumps({"pillars": ["revenue"], "confidence": 0.9}))
    with pytest.raises(UnknownPillar):
        await LLMIntentAdapter(client=llm).classify_intent("q")


@pytest.mark.asyncio
async def test_llm_adapter_setup_and_suggestion():
    llm = ScriptedLLM(
        json.dumps(
            {
                "is_ambiguous": True,
                "parsed_request": {},
                "clarifying_questions": [{"question": "Over what time window?", "placeholder": "e.g., 30 days"}],
            }
        ),
        "  Last 30 days \n",
    )
    adapter = LLMIntentAdapter(client=llm)

    setup = await adapter.generate_clarification_setup("What's driving churn?")
    suggestion = await adapter.generate_suggested_answer("What's driving churn?", "Over what time window?")

    assert isinstance(setup, SetupIncomplete)
    assert suggestion == "Last 30 days"
    assert llm.calls[1]["json_mode"] is False
