"""
Pydantic types exchanged between the engine and its collaborators.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from insight_engine.engine.pillars import Pillar, parse_pillar


class IntentClassification(BaseModel):
    """Pillars a question is about, as reported by the classifier."""

    model_config = ConfigDict(frozen=True)

    pillars: list[Pillar] = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    primary_pillar: Pillar

    @field_validator("pillars", mode="before")
    @classmethod
    def _parse_pillars(cls, value: Any) -> list[Pillar]:
        if not isinstance(value, (list, tuple, set)):
            raise ValueError("pillars must be a list")
        parsed: list[Pillar] = []
        for item in value:
            pillar = parse_pillar(item, field="pillars")
            if pillar not in parsed:
                parsed.append(pillar)
        return parsed

    @field_validator("primary_pillar", mode="before")
    @classmethod
    def _parse_primary(cls, value: Any) -> Pillar:
        return parse_pillar(value, field="primary_pillar")

    @property
    def affected_pillars(self) -> frozenset[Pillar]:
        """Pillars boosted by this intent; the primary pillar always counts."""
        return frozenset(self.pillars) | {self.primary_pillar}


class ClarifyingQuestion(BaseModel):
    """One follow-up slot on an ambiguous question."""

    question: str
    placeholder: str = ""
    answer: Optional[str] = None

    @property
    def is_answered(self) -> bool:
        return bool(self.answer and self.answer.strip())


class AnalysisBrief(BaseModel):
    """Plain-language statement of what an analysis will investigate."""

    model_config = ConfigDict(frozen=True)

    heading: str
    description: str
    hypothesis: str
    statistical_test: str
    user_cohort: str
    time_frame: str


class SetupComplete(BaseModel):
    """The question is self-sufficient; a brief could be drafted directly."""

    kind: Literal["complete"] = "complete"
    brief: AnalysisBrief


class SetupIncomplete(BaseModel):
    """The question needs follow-up answers before it can be analysed."""

    kind: Literal["incomplete"] = "incomplete"
    questions: list[ClarifyingQuestion] = Field(min_length=1)


ClarificationSetup = Annotated[
    Union[SetupComplete, SetupIncomplete],
    Field(discriminator="kind"),
]


class AnalysisResultRecord(BaseModel):
    """Computed statistics attached to a ready question."""

    question_id: str
    payload: dict[str, Any]
    created_at: datetime


class QuestionRecord(BaseModel):
    """Read model of a question, including its analysis result if ready."""

    id: str
    user_id: str
    text: str
    source: str
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    intent: Optional[IntentClassification] = None
    clarifying_questions: Optional[list[ClarifyingQuestion]] = None
    clarification_finalized_at: Optional[datetime] = None
    analysis_brief: Optional[AnalysisBrief] = None
    result: Optional[AnalysisResultRecord] = None
