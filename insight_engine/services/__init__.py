"""Services layer"""

from insight_engine.services.digest_service import DigestService, digest_service
from insight_engine.services.event_hub import EventHub, LifecycleEvent, event_hub
from insight_engine.services.question_service import QuestionService, question_service
from insight_engine.services.weight_store import WeightStore

__all__ = [
    "DigestService",
    "digest_service",
    "EventHub",
    "LifecycleEvent",
    "event_hub",
    "QuestionService",
    "question_service",
    "WeightStore",
]
