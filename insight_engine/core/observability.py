"""
Error tracking with Sentry.
"""

from typing import Optional

import sentry_sdk
import structlog
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from insight_engine.core.config import settings

logger = structlog.get_logger(__name__)

_sentry_initialized = False


def init_sentry() -> None:
    """Initialize Sentry error tracking when a DSN is configured."""
    global _sentry_initialized

    if _sentry_initialized or not settings.sentry_dsn:
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        # Don't send PII
        send_default_pii=False,
    )

    _sentry_initialized = True
    logger.info(
        "Sentry initialized",
        environment=settings.sentry_environment,
        sample_rate=settings.sentry_traces_sample_rate,
    )


def capture_exception(error: Exception, context: Optional[dict] = None) -> None:
    """
    Capture an exception to Sentry with additional context.

    Args:
        error: The exception to capture
        context: Additional context to attach
    """
    if not settings.sentry_dsn:
        return

    if context:
        sentry_sdk.set_context("additional", context)

    sentry_sdk.capture_exception(error)


def set_question_context(user_id: str, question_id: Optional[str] = None, status: Optional[str] = None) -> None:
    """Attach the question being processed to subsequent Sentry events."""
    if not settings.sentry_dsn:
        return

    sentry_sdk.set_user({"id": user_id})
    sentry_sdk.set_context("question", {"question_id": question_id, "status": status})
