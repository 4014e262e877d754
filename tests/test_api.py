"""
API endpoint tests.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from insight_engine.api.deps import DEV_USER_ID, get_digest_service, get_question_service
from insight_engine.api.main import app
from insight_engine.core.config import settings
from insight_engine.engine.pillars import Pillar
from insight_engine.engine.schemas import ClarifyingQuestion, IntentClassification, SetupIncomplete
from insight_engine.services.digest_service import DigestService

CHURN = "What's driving churn?"


@pytest_asyncio.fixture
async def client(service, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client bound to the test services."""
    digest = DigestService(weight_store=service.weights, session_factory=session_factory)
    app.dependency_overrides[get_question_service] = lambda: service
    app.dependency_overrides[get_digest_service] = lambda: digest

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def churn_needs_window(adapter):
    adapter.setups[CHURN] = SetupIncomplete(
        questions=[ClarifyingQuestion(question="Over what time window?", placeholder="e.g., 30 days")]
    )
    adapter.intents[CHURN] = IntentClassification(
        pillars=[Pillar.RETENTION], confidence=1.0, primary_pillar=Pillar.RETENTION
    )


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test root endpoint."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "name" in data
    assert "endpoints" in data


@pytest.mark.asyncio
async def test_clarification_flow(client: AsyncClient, churn_needs_window):
    response = await client.post("/api/v1/questions", json={"text": CHURN})
    assert response.status_code == 201
    question = response.json()
    assert question["status"] == "waiting-for-answers"
    assert question["user_id"] == DEV_USER_ID

    response = await client.post(
        f"/api/v1/questions/{question['id']}/suggested-answer", json={"slot_index": 0}
    )
    assert response.status_code == 200
    assert response.json()["suggestion"] == "30 days"

    response = await client.post(
        f"/api/v1/questions/{question['id']}/answers", json={"answers": ["30 days"]}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "queued"

    response = await client.get("/api/v1/profile/weights")
    assert response.status_code == 200
    body = response.json()
    assert body["weights"]["retention"] == pytest.approx(0.575)
    assert body["ranked"][0] == "retention"


@pytest.mark.asyncio
async def test_incomplete_answers_return_422(client: AsyncClient, churn_needs_window):
    question = (await client.post("/api/v1/questions", json={"text": CHURN})).json()

    response = await client.post(f"/api/v1/questions/{question['id']}/answers", json={"answers": [""]})

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "INCOMPLETE_ANSWERS"
    assert body["context"]["missing_slots"] == [0]


@pytest.mark.asyncio
async def test_chat_answers_route(client: AsyncClient, churn_needs_window):
    question = (await client.post("/api/v1/questions", json={"text": CHURN, "source": "slack"})).json()

    pending = await client.get("/api/v1/questions/pending", params={"source": "slack"})
    assert pending.json()["id"] == question["id"]

    response = await client.post(
        f"/api/v1/questions/{question['id']}/answers/chat",
        json={"message": "@bot\nLast 30 days"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "queued"


@pytest.mark.asyncio
async def test_cancel_ready_question_returns_409(client: AsyncClient):
    question = (await client.post("/api/v1/questions", json={"text": "How is engagement?"})).json()

    response = await client.post(
        f"/api/v1/questions/{question['id']}/complete", json={"result": {"p_value": 0.01}}
    )
    assert response.status_code == 200
    assert response.json()["result"]["payload"] == {"p_value": 0.01}

    response = await client.delete(f"/api/v1/questions/{question['id']}")
    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "INVALID_TRANSITION"
    assert body["context"]["current_status"] == "ready"


@pytest.mark.asyncio
async def test_cancelled_questions_leave_listing(client: AsyncClient):
    first = (await client.post("/api/v1/questions", json={"text": "How is engagement?"})).json()
    second = (await client.post("/api/v1/questions", json={"text": "How is ARPU?"})).json()

    response = await client.delete(f"/api/v1/questions/{first['id']}")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    listing = (await client.get("/api/v1/questions")).json()
    assert listing["total"] == 1
    assert listing["questions"][0]["id"] == second["id"]


@pytest.mark.asyncio
async def test_unknown_question_returns_404(client: AsyncClient):
    response = await client.get("/api/v1/questions/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_other_users_questions_are_hidden(client: AsyncClient):
    question = (await client.post("/api/v1/questions", json={"text": "How is engagement?"})).json()
    token = jwt.encode({"sub": "someone-else"}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    response = await client.get(
        f"/api/v1/questions/{question['id']}",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client: AsyncClient):
    response = await client.get("/api/v1/questions", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_source(client: AsyncClient):
    """Test validation for an unsupported channel."""
    response = await client.post("/api/v1/questions", json={"text": "Q?", "source": "email"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_digest_endpoint(client: AsyncClient, churn_needs_window, adapter):
    adapter.intents["Which cohort"] = adapter.intents[CHURN]
    await client.post("/api/v1/questions", json={"text": "Which cohort retains best?"})
    await client.post("/api/v1/questions", json={"text": "How is ARPU?"})

    response = await client.get("/api/v1/digest")
    assert response.status_code == 200
    body = response.json()
    assert body["total_questions"] == 2
    assert len(body["top_pillars"]) == 2
    assert len(body["action_items"]) <= 3
    assert len(body["next_week_focus"]) <= 2


@pytest.mark.asyncio
async def test_blank_question_text_returns_422(client: AsyncClient):
    response = await client.post("/api/v1/questions", json={"text": "   \t  "})
    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "INVALID_QUESTION"
    assert body["context"]["field"] == "text"

    listing = (await client.get("/api/v1/questions")).json()
    assert listing["total"] == 0
