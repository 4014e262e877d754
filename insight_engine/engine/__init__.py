"""Domain logic: pillars, weights, lifecycle, clarification and digest."""

from insight_engine.engine.intent_adapter import BaseIntentAdapter, LLMIntentAdapter
from insight_engine.engine.pillars import ALL_PILLARS, Pillar, is_valid_pillar, parse_pillar
from insight_engine.engine.schemas import (
    AnalysisBrief,
    ClarifyingQuestion,
    IntentClassification,
    QuestionRecord,
    SetupComplete,
    SetupIncomplete,
)
from insight_engine.engine.weights import DecayPolicy, PillarWeights, update_weights

__all__ = [
    "ALL_PILLARS",
    "Pillar",
    "is_valid_pillar",
    "parse_pillar",
    "AnalysisBrief",
    "ClarifyingQuestion",
    "IntentClassification",
    "QuestionRecord",
    "SetupComplete",
    "SetupIncomplete",
    "DecayPolicy",
    "PillarWeights",
    "update_weights",
    "BaseIntentAdapter",
    "LLMIntentAdapter",
]
