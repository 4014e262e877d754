"""
Question and AnalysisResult database models.
A question moves through the lifecycle queued / waiting-for-answers / ready / cancelled.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from insight_engine.core.database import Base, JSONType


class QuestionStatus(str, Enum):
    """Question lifecycle states."""
    QUEUED = "queued"
    WAITING_FOR_ANSWERS = "waiting-for-answers"
    READY = "ready"
    CANCELLED = "cancelled"


class QuestionSource(str, Enum):
    """Channel a question was submitted through."""
    WEB = "web"
    SLACK = "slack"


class Question(Base):
    """
    A free-text analytics question and its lifecycle state.
    Cancelled rows are kept for audit and hidden from active listings.
    """

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    text: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), default=QuestionStatus.QUEUED.value, nullable=False
    )

    # {"pillars": ["retention"], "confidence": 0.85, "primary_pillar": "retention"}
    intent: Mapped[Optional[dict]] = mapped_column(JSONType)

    # [{"question": "...", "placeholder": "...", "answer": null}]
    clarifying_questions: Mapped[Optional[list]] = mapped_column(JSONType)
    clarification_finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Generated once, never rewritten
    analysis_brief: Mapped[Optional[dict]] = mapped_column(JSONType)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_questions_user_status", "user_id", "status"),
        Index("idx_questions_user_created", "user_id", "created_at"),
        CheckConstraint(
            "status IN ('queued', 'waiting-for-answers', 'ready', 'cancelled')",
            name="ck_questions_status",
        ),
        CheckConstraint("source IN ('web', 'slack')", name="ck_questions_source"),
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, user_id={self.user_id}, status={self.status})>"


class AnalysisResult(Base):
    """
    Computed statistics for a ready question.
    Append-only, one row per question.
    """

    __tablename__ = "analysis_results"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<AnalysisResult(id={self.id}, question_id={self.question_id})>"
