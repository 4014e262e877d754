"""Database models"""

from insight_engine.models.pillar_profile import PillarProfile
from insight_engine.models.question import (
    AnalysisResult,
    Question,
    QuestionSource,
    QuestionStatus,
)

__all__ = [
    "AnalysisResult",
    "PillarProfile",
    "Question",
    "QuestionSource",
    "QuestionStatus",
]
