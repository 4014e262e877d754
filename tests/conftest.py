"""
Pytest configuration and fixtures.
"""

import os

# Keep the module-level engine off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from insight_engine.core.config import settings
from insight_engine.core.database import Base
from insight_engine.core.exceptions import ClassificationUnavailable
from insight_engine.engine.intent_adapter import BaseIntentAdapter
from insight_engine.engine.pillars import Pillar
from insight_engine.engine.schemas import (
    AnalysisBrief,
    ClarificationSetup,
    ClarifyingQuestion,
    IntentClassification,
    SetupComplete,
)
from insight_engine.engine.weights import DecayPolicy
from insight_engine.services.event_hub import EventHub, LifecycleEvent
from insight_engine.services.question_service import QuestionService
from insight_engine.services.weight_store import WeightStore


SAMPLE_BRIEF = AnalysisBrief(
    heading="Retention Drivers",
    description="Which behaviours predict 30-day retention",
    hypothesis="Users who finish onboarding retain better",
    statistical_test="Chi-square test on retained vs churned",
    user_cohort="New users",
    time_frame="Last 30 days",
)


class FakeIntentAdapter(BaseIntentAdapter):
    """
    Scripted intent adapter.

    Intents and setups are looked up by text prefix so that reclassification
    with appended clarification context still matches.
    """

    def __init__(self):
        self.intents: dict[str, IntentClassification] = {}
        self.setups: dict[str, ClarificationSetup] = {}
        self.default_intent = IntentClassification(
            pillars=[Pillar.ENGAGEMENT], confidence=1.0, primary_pillar=Pillar.ENGAGEMENT
        )
        self.classify_failures = 0
        self.setup_failures = 0
        self.brief_fails = False
        self.suggestion: Optional[str] = "30 days"
        self.classified_texts: list[str] = []
        self.setup_calls = 0
        self.brief_calls = 0

    def _lookup(self, table: dict, text: str):
        for prefix, value in table.items():
            if text.startswith(prefix):
                return value
        return None

    async def classify_intent(self, text: str) -> IntentClassification:
        self.classified_texts.append(text)
        if self.classify_failures > 0:
            self.classify_failures -= 1
            raise ClassificationUnavailable("scripted outage")
        return self._lookup(self.intents, text) or self.default_intent

    async def generate_clarification_setup(self, text: str) -> ClarificationSetup:
        self.setup_calls += 1
        if self.setup_failures > 0:
            self.setup_failures -= 1
            raise ClassificationUnavailable("scripted setup outage")
        return self._lookup(self.setups, text) or SetupComplete(brief=SAMPLE_BRIEF)

    async def generate_analysis_brief(
        self,
        text: str,
        clarifications: list[ClarifyingQuestion],
        parameters: Optional[dict] = None,
    ) -> AnalysisBrief:
        self.brief_calls += 1
        if self.brief_fails:
            raise ClassificationUnavailable("brief generator down")
        return SAMPLE_BRIEF

    async def generate_suggested_answer(self, text: str, clarifying_question: str) -> str:
        if self.suggestion is None:
            raise ClassificationUnavailable("suggestions down")
        return self.suggestion


class RecordingHub(EventHub):
    """Event hub that also keeps every published event."""

    def __init__(self):
        super().__init__()
        self.events: list[LifecycleEvent] = []

    def publish(self, event: LifecycleEvent) -> int:
        delivered = super().publish(event)
        self.events.append(event)
        return delivered


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """No backoff sleeps between scripted classifier failures."""
    monkeypatch.setattr(settings, "classifier_backoff_min", 0.0)
    monkeypatch.setattr(settings, "classifier_backoff_max", 0.0)
    monkeypatch.setattr(settings, "classifier_max_attempts", 3)


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def adapter() -> FakeIntentAdapter:
    return FakeIntentAdapter()


@pytest.fixture
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture
def weight_store(session_factory) -> WeightStore:
    return WeightStore(DecayPolicy(decay_factor=0.95, boost_factor=0.10), session_factory=session_factory)


@pytest.fixture
def service(adapter, hub, weight_store, session_factory) -> QuestionService:
    return QuestionService(
        adapter=adapter,
        weight_store=weight_store,
        hub=hub,
        session_factory=session_factory,
    )


@pytest.fixture
def mock_user_id() -> str:
    """Return mock user ID for testing."""
    return "test-user-001"
