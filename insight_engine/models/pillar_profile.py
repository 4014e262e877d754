"""
PillarProfile model: one row of pillar weights per user.

Created with the default vector the first time a user's weights are needed
and only ever rewritten by the weight store.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from insight_engine.core.database import Base, JSONType


class PillarProfile(Base):
    """Per-user decaying relevance weights over the analytics pillars."""

    __tablename__ = "pillar_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    weights: Mapped[dict] = mapped_column(JSONType, nullable=False)
    update_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<PillarProfile(user_id={self.user_id}, updates={self.update_count})>"
