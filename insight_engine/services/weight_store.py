"""
Weight Store service.

Persists one PillarProfile row per user and applies the decay-and-boost
update inside the caller's transaction. Writers for the same user are
serialized through `locks`; the row is also selected FOR UPDATE where the
database supports it.
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insight_engine.core.database import get_db_context
from insight_engine.core.locks import KeyedLock
from insight_engine.engine.schemas import IntentClassification
from insight_engine.engine.weights import (
    DecayPolicy,
    PillarWeights,
    update_weights,
    weights_as_of,
)
from insight_engine.models.pillar_profile import PillarProfile
from insight_engine.utils.timeutils import elapsed_days, utcnow

logger = structlog.get_logger(__name__)


class WeightStore:
    """Per-user decaying relevance vector over the pillars."""

    def __init__(
        self,
        policy: Optional[DecayPolicy] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.policy = policy or DecayPolicy.from_settings()
        self.session_factory = session_factory
        self.locks = KeyedLock()

    async def get_profile(
        self,
        session: AsyncSession,
        user_id: str,
        for_update: bool = False,
    ) -> PillarProfile:
        """Load the user's profile, creating it with default weights on first use."""
        stmt = select(PillarProfile).where(PillarProfile.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        profile = result.scalar_one_or_none()

        if profile is None:
            now = utcnow()
            profile = PillarProfile(
                user_id=user_id,
                weights=PillarWeights.default().as_dict(),
                update_count=0,
                updated_at=now,
                created_at=now,
            )
            session.add(profile)
            await session.flush()
            logger.info("Pillar profile created", user_id=user_id)

        return profile

    async def apply_intent(
        self,
        session: AsyncSession,
        user_id: str,
        intent: IntentClassification,
        now: Optional[datetime] = None,
    ) -> PillarWeights:
        """
        Decay and boost the user's weights for one classified question.

        Runs in the caller's transaction and does not commit; the caller holds
        `locks.hold(user_id)` for the duration.
        """
        now = now or utcnow()
        profile = await self.get_profile(session, user_id, for_update=True)
        prior = PillarWeights.from_storage(profile.weights)

        updated = update_weights(
            prior,
            intent,
            self.policy,
            elapsed_days=elapsed_days(profile.updated_at, now),
        )

        profile.weights = updated.as_dict()
        profile.update_count = (profile.update_count or 0) + 1
        profile.updated_at = now

        logger.info(
            "Pillar weights updated",
            user_id=user_id,
            primary_pillar=intent.primary_pillar.value,
            confidence=intent.confidence,
            update_count=profile.update_count,
        )
        return updated

    async def snapshot(
        self,
        session: AsyncSession,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> PillarWeights:
        """Weights as of now, with lazy time decay applied but not persisted."""
        profile = await self.get_profile(session, user_id)
        stored = PillarWeights.from_storage(profile.weights)
        return weights_as_of(stored, self.policy, elapsed_days(profile.updated_at, now or utcnow()))

    async def current_weights(
        self,
        user_id: str,
        db: Optional[AsyncSession] = None,
    ) -> PillarWeights:
        """Read the user's weights; creates the default profile if missing."""
        async def _get(session: AsyncSession) -> PillarWeights:
            weights = await self.snapshot(session, user_id)
            # Persists the default profile when this was the first read
            await session.commit()
            return weights

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)

    async def update_count(self, user_id: str, db: Optional[AsyncSession] = None) -> int:
        """Number of weight updates applied for a user so far."""
        async def _get(session: AsyncSession) -> int:
            result = await session.execute(
                select(PillarProfile.update_count).where(PillarProfile.user_id == user_id)
            )
            return result.scalar_one_or_none() or 0

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)
