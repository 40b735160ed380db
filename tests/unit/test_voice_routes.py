"""Tests for the voice and health HTTP endpoints."""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, patch

from httpx import ASGITransport, AsyncClient

from app.core.intelligence.intent.classifier import IntentClassifier
from app.core.intelligence.session.manager import InMemorySessionStore
from app.core.scheduling.booking import BookingTrigger, InMemoryBookingService
from app.core.scheduling.engine import ConversationEngine, get_conversation_engine
from app.core.scheduling.flow import DialogueStateMachine
from app.core.scheduling.response import ResponseGenerator
from app.infra.conversation_log import get_conversation_logger
from app.main import app
from tests.factories import TODAY, FakeSlotProvider


@pytest.fixture
def engine(two_slots):
    responses = ResponseGenerator(timezone_label="IST", frontend_url="https://book.example.com")
    return ConversationEngine(
        store=InMemorySessionStore(),
        classifier=IntentClassifier(remote=None),
        state_machine=DialogueStateMachine(
            slot_provider=FakeSlotProvider(two_slots),
            booking_trigger=BookingTrigger(InMemoryBookingService()),
            responses=responses,
            today_fn=lambda: TODAY,
        ),
        responses=responses,
    )


@pytest.fixture
def conversation_logger():
    mock = AsyncMock()
    mock.get_all_logs.return_value = [{"session_id": "s1", "role": "user", "content": "hi"}]
    mock.get_logs_by_session.return_value = []
    return mock


@pytest_asyncio.fixture
async def client(engine, conversation_logger):
    app.dependency_overrides[get_conversation_engine] = lambda: engine
    app.dependency_overrides[get_conversation_logger] = lambda: conversation_logger
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class TestVoiceRoutes:

    @pytest.mark.asyncio
    async def test_start_session(self, client):
        response = await client.post("/voice/session/start")

        assert response.status_code == 200
        data = response.json()
        assert data["session_id"]
        assert data["state"] == "GREETING"
        assert "Hello" in data["greeting"]

    @pytest.mark.asyncio
    async def test_message_and_history(self, client):
        sid = (await client.post("/voice/session/start")).json()["session_id"]

        response = await client.post(
            f"/voice/session/{sid}/message",
            json={
                "message": "I want to book an appointment",
                "is_voice_input": True,
                "tts_voice": "alloy",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "DISCLAIMER"
        assert data["intent"] == "book_new"
        assert data["booking_code"] is None

        history = (await client.get(f"/voice/session/{sid}/history")).json()
        roles = [m["role"] for m in history["messages"]]
        assert roles == ["assistant", "user", "assistant"]
        assert history["messages"][1]["metadata"]["is_voice_input"] is True
        assert history["messages"][2]["metadata"]["tts_voice"] == "alloy"

        state = (await client.get(f"/voice/session/{sid}/state")).json()
        assert state == {"session_id": sid, "state": "DISCLAIMER"}

    @pytest.mark.asyncio
    async def test_empty_message_is_accepted(self, client):
        sid = (await client.post("/voice/session/start")).json()["session_id"]

        response = await client.post(f"/voice/session/{sid}/message", json={})

        assert response.status_code == 200
        assert response.json()["state"] == "GREETING"

    @pytest.mark.asyncio
    async def test_message_too_long(self, client):
        sid = (await client.post("/voice/session/start")).json()["session_id"]

        response = await client.post(
            f"/voice/session/{sid}/message", json={"message": "a" * 2001}
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Validation error"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,path",
        [
            ("post", "/voice/session/missing/message"),
            ("get", "/voice/session/missing/history"),
            ("get", "/voice/session/missing/state"),
            ("get", "/voice/session/missing/debug"),
        ],
    )
    async def test_unknown_session_is_404(self, client, method, path):
        if method == "post":
            response = await client.post(path, json={"message": "hello"})
        else:
            response = await client.get(path)

        assert response.status_code == 404
        assert response.json()["detail"] == "Session not found"

    @pytest.mark.asyncio
    async def test_debug_snapshot(self, client):
        sid = (await client.post("/voice/session/start")).json()["session_id"]

        data = (await client.get(f"/voice/session/{sid}/debug")).json()

        assert data["state"] == "GREETING"
        assert "messages" not in data

    @pytest.mark.asyncio
    async def test_logs(self, client, conversation_logger):
        all_logs = await client.get("/voice/logs/all", params={"limit": 10})
        session_logs = await client.get("/voice/logs/session/s1")

        assert all_logs.status_code == 200
        assert all_logs.json()[0]["content"] == "hi"
        conversation_logger.get_all_logs.assert_awaited_once_with(limit=10)
        assert session_logs.json() == []
        conversation_logger.get_logs_by_session.assert_awaited_once_with("s1")


class TestHealthRoutes:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_live(self, client):
        response = await client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.asyncio
    async def test_ready_with_redis_down(self, client):
        with patch("app.api.routes.health.settings") as mock_settings, patch(
            "app.api.routes.health.check_redis_health",
            AsyncMock(return_value=False),
        ):
            mock_settings.session_backend = "redis"
            mock_settings.conversation_log_enabled = False

            response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"] == {"redis": "failed"}

    @pytest.mark.asyncio
    async def test_ready_in_memory(self, client):
        with patch("app.api.routes.health.settings") as mock_settings:
            mock_settings.session_backend = "memory"
            mock_settings.conversation_log_enabled = False

            response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
