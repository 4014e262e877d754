"""Core infrastructure modules"""

from insight_engine.core.config import settings
from insight_engine.core.database import AsyncSessionLocal, get_db, get_db_context
from insight_engine.core.cache import RedisCache
from insight_engine.core.llm_clients import LLMClient

__all__ = ["settings", "get_db", "get_db_context", "AsyncSessionLocal", "RedisCache", "LLMClient"]
