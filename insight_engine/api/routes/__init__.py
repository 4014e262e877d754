"""API Route modules"""

from insight_engine.api.routes.digest import router as digest_router
from insight_engine.api.routes.profile import router as profile_router
from insight_engine.api.routes.questions import router as questions_router

__all__ = [
    "digest_router",
    "profile_router",
    "questions_router",
]
