"""
Digest service: reads committed question history and hands it to the pure
aggregator. The Redis copy is a convenience, never the source of truth.
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insight_engine.core.cache import RedisCache, cache
from insight_engine.core.config import settings
from insight_engine.core.database import get_db_context
from insight_engine.engine.digest import DigestReport, build_digest, digest_window
from insight_engine.models.question import Question, QuestionStatus
from insight_engine.services.question_service import to_record
from insight_engine.services.weight_store import WeightStore
from insight_engine.utils.timeutils import as_utc, utcnow

logger = structlog.get_logger(__name__)


def is_current(report: DigestReport, now: Optional[datetime] = None) -> bool:
    """Whether a report still describes the latest window (within the cache TTL)."""
    now = now or utcnow()
    return as_utc(report.generated_at) >= now - timedelta(seconds=settings.digest_cache_ttl)


class DigestService:
    """Weekly digest generation."""

    def __init__(
        self,
        weight_store: Optional[WeightStore] = None,
        redis_cache: Optional[RedisCache] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.session_factory = session_factory
        self.weights = weight_store or WeightStore(session_factory=session_factory)
        self.cache = redis_cache or cache

    async def generate(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        use_cache: bool = False,
        db: Optional[AsyncSession] = None,
    ) -> DigestReport:
        """
        Build the user's digest for the window ending at `now`.

        Args:
            user_id: User identifier
            now: End of the window (defaults to the current time)
            use_cache: Return a cached report when one exists
            db: Optional database session
        """
        if use_cache and now is None:
            cached = await self._cached(user_id)
            if cached is not None:
                return cached

        now = now or utcnow()
        start, end = digest_window(now, settings.digest_window_days)

        async def _generate(session: AsyncSession) -> DigestReport:
            stmt = (
                select(Question)
                .where(
                    Question.user_id == user_id,
                    Question.status != QuestionStatus.CANCELLED.value,
                    Question.created_at >= start,
                    Question.created_at < end,
                )
                .order_by(Question.created_at.asc())
            )
            questions = [to_record(q) for q in (await session.execute(stmt)).scalars().all()]
            weights = await self.weights.snapshot(session, user_id, now=now)
            await session.commit()

            return build_digest(
                user_id,
                questions,
                weights,
                now=now,
                window_days=settings.digest_window_days,
                top_n=settings.digest_top_pillars,
            )

        if db:
            report = await _generate(db)
        else:
            async with get_db_context(self.session_factory) as session:
                report = await _generate(session)

        logger.info(
            "Digest generated",
            user_id=user_id,
            total_questions=report.total_questions,
            top_pillars=[t.pillar.value for t in report.top_pillars],
        )
        await self._store(user_id, report)
        return report

    async def active_users(self, since: datetime, db: Optional[AsyncSession] = None) -> list[str]:
        """Users with at least one non-cancelled question since `since`."""
        async def _get(session: AsyncSession) -> list[str]:
            stmt = (
                select(Question.user_id)
                .where(
                    Question.created_at >= since,
                    Question.status != QuestionStatus.CANCELLED.value,
                )
                .distinct()
            )
            return list((await session.execute(stmt)).scalars().all())

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)

    async def _cached(self, user_id: str) -> Optional[DigestReport]:
        if not self.cache.is_connected:
            return None
        try:
            data = await self.cache.get_digest(user_id)
        except RedisError as e:
            logger.warning("Digest cache read failed", user_id=user_id, error=str(e))
            return None
        if data is None:
            return None
        try:
            report = DigestReport.model_validate(data)
        except ValidationError:
            logger.warning("Discarding unreadable cached digest", user_id=user_id)
            return None
        if not is_current(report):
            logger.info("Discarding stale cached digest", user_id=user_id, generated_at=report.generated_at.isoformat())
            return None
        return report

    async def _store(self, user_id: str, report: DigestReport) -> None:
        # Reports for past windows are never cached as the latest digest
        if not self.cache.is_connected or not is_current(report):
            return
        try:
            await self.cache.set_digest(user_id, report.model_dump(mode="json"))
        except RedisError as e:
            logger.warning("Digest cache write failed", user_id=user_id, error=str(e))


# Global service instance
digest_service = DigestService()
