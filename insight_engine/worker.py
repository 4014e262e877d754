"""
Celery worker configuration for background tasks.
"""

import asyncio
from datetime import timedelta

import structlog
from celery import Celery
from celery.schedules import crontab
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from insight_engine.core.cache import RedisCache
from insight_engine.core.config import settings
from insight_engine.services.digest_service import DigestService
from insight_engine.utils.timeutils import utcnow

logger = structlog.get_logger(__name__)

# Create Celery app
celery_app = Celery(
    "insight_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,  # digests for every active user
    task_soft_time_limit=840,
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
)

# Task routing
celery_app.conf.task_routes = {
    "insight_engine.worker.*": {"queue": "digests"},
}

# Scheduled tasks (Celery Beat)
celery_app.conf.beat_schedule = {
    "weekly-digests": {
        "task": "insight_engine.worker.generate_weekly_digests",
        "schedule": crontab(minute=0, hour=8, day_of_week="mon"),
    },
}


async def _generate_weekly_digests() -> dict:
    # Each task run gets its own event loop, so pooled connections cannot be reused
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    redis_cache = RedisCache()
    await redis_cache.connect()

    service = DigestService(redis_cache=redis_cache, session_factory=session_factory)
    now = utcnow()
    generated = 0
    failed = 0

    try:
        users = await service.active_users(now - timedelta(days=settings.digest_window_days))
        for user_id in users:
            try:
                await service.generate(user_id, now=now)
                generated += 1
            except Exception as e:
                failed += 1
                logger.error("Digest generation failed", user_id=user_id, error=str(e))
    finally:
        await redis_cache.disconnect()
        await engine.dispose()

    logger.info("Weekly digests generated", users=generated, failed=failed)
    return {"generated": generated, "failed": failed}


@celery_app.task(name="insight_engine.worker.generate_weekly_digests")
def generate_weekly_digests() -> dict:
    """Recompute and cache the weekly digest for every user active in the window."""
    return asyncio.run(_generate_weekly_digests())
