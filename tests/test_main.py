import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from agent_hums.config.settings import Settings
from agent_hums.dispatcher import ChatDispatcher
from agent_hums.errors import PermanentUpstreamError
from agent_hums.main import CLIENT_CLOSED_REQUEST, ClientDisconnected, create_app, run_until_disconnect
from agent_hums.schemas import ChatResponse
from agent_hums.services.document_analysis import DocumentAnalyzer
from agent_hums.tools.executor import AuthTokens, ToolServices


def _dispatcher(settings: Settings) -> ChatDispatcher:
    services = ToolServices(search=MagicMock(), calendar=MagicMock(), drive=MagicMock(), documents=DocumentAnalyzer())
    return ChatDispatcher(settings, services=services)


@pytest.fixture
def mock_settings() -> Settings:
    return Settings(mock_mode=True, google_client_id="client-123.apps.googleusercontent.com")


@pytest.fixture
def client(mock_settings):
    return TestClient(create_app(mock_settings, _dispatcher(mock_settings)))


class TestInfoEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert body["mockMode"] is True
        assert body["services"] == {"anthropic": False, "groq": False, "braveSearch": False}

    def test_public_config(self, client):
        body = client.get("/api/config").json()
        assert body == {
            "googleClientId": "client-123.apps.googleusercontent.com",
            "environment": "development",
            "mockMode": True,
        }

    def test_prompt_info(self, client):
        body = client.get("/api/prompt-info").json()
        assert body["systemPromptLength"] > body["lightweightPromptLength"] > 0
        assert set(body["taskTypes"]) == {"conversation", "tool_execution", "complex_analysis"}
        assert body["taskTypes"]["complex_analysis"]["tools"] == ["searchWeb"]

    def test_models(self):
        settings = Settings(groq_api_key="gsk_test")
        client = TestClient(create_app(settings, _dispatcher(settings)))
        ids = [m["id"] for m in client.get("/api/models").json()]
        assert ids
        assert all(i.startswith("groq:") for i in ids)


class TestClassifyEndpoint:
    def test_classify(self, client):
        response = client.post("/api/classify", json={"message": "busca noticias en la web"})
        assert response.status_code == 200
        assert response.json()["taskType"] == "tool_execution"

    def test_invalid_forced_type(self, client):
        response = client.post("/api/classify", json={"message": "hola", "forceTaskType": "planning"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"
        assert "forceTaskType" in response.json()["message"]


class TestChatEndpoint:
    @pytest.mark.parametrize("path", ["/api/chat", "/hybridChat"])
    def test_mock_mode_chat(self, client, path):
        response = client.post(path, json={"message": "busca noticias de IA", "conversationId": "c-9"})

        assert response.status_code == 200
        body = response.json()
        assert body["simulated"] is True
        assert body["fallbackReason"] == "mock_mode"
        assert body["taskType"] == "tool_execution"
        assert body["modelUsed"].endswith("-mock")
        assert body["toolsUsed"] == ["searchWeb"]
        assert body["toolCalls"][0]["output"] == {"status": "simulated"}
        assert body["conversationId"] == "c-9"
        assert "usage" not in body

    def test_missing_message(self, client):
        response = client.post("/api/chat", json={"conversationHistory": []})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"
        assert response.json()["message"].startswith("message")

    def test_blank_message(self, client):
        response = client.post("/api/chat", json={"message": "   "})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"

    def test_tokens_forwarded(self, mock_settings):
        dispatcher = _dispatcher(mock_settings)
        dispatcher.handle = AsyncMock(
            return_value=ChatResponse(response="ok", task_type="conversation", model_used="m")
        )
        client = TestClient(create_app(mock_settings, dispatcher))

        response = client.post(
            "/api/chat",
            json={"message": "hola"},
            headers={"X-Calendar-Token": "cal-tok", "X-Drive-Token": "drv-tok"},
        )

        assert response.status_code == 200
        assert response.json()["response"] == "ok"
        assert dispatcher.handle.await_args.args[1] == AuthTokens(calendar="cal-tok", drive="drv-tok")

    def test_upstream_failure_maps_to_502(self, mock_settings):
        dispatcher = _dispatcher(mock_settings)
        dispatcher.handle = AsyncMock(side_effect=PermanentUpstreamError("invalid api key", 401))
        client = TestClient(create_app(mock_settings, dispatcher))

        response = client.post("/api/chat", json={"message": "hola"})

        assert response.status_code == 502
        assert response.json() == {"error": "upstream_error", "message": "invalid api key"}

    def test_unexpected_failure_maps_to_500(self, mock_settings):
        dispatcher = _dispatcher(mock_settings)
        dispatcher.handle = AsyncMock(side_effect=RuntimeError("boom"))
        client = TestClient(create_app(mock_settings, dispatcher), raise_server_exceptions=False)

        response = client.post("/api/chat", json={"message": "hola"})

        assert response.status_code == 500
        assert response.json()["error"] == "internal_error"


class _FakeRequest:
    """Minimal stand-in for a Starlette request that disconnects after N polls."""

    method = "POST"

    class url:
        path = "/api/chat"

    def __init__(self, connected_polls: int):
        self._remaining = connected_polls
        self.polls = 0

    async def is_disconnected(self) -> bool:
        self.polls += 1
        self._remaining -= 1
        return self._remaining < 0


class TestClientDisconnect:
    @pytest.fixture(autouse=True)
    def _fast_polling(self, monkeypatch):
        monkeypatch.setattr("agent_hums.main.DISCONNECT_POLL_SECONDS", 0.01)

    @pytest.mark.asyncio
    async def test_disconnect_cancels_work(self):
        state = {"cancelled": False}

        async def slow_dispatch():
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                state["cancelled"] = True
                raise
            return "too late"

        request = _FakeRequest(connected_polls=1)

        with pytest.raises(ClientDisconnected):
            await run_until_disconnect(request, slow_dispatch())

        assert state["cancelled"] is True
        assert request.polls == 2
        assert [t for t in asyncio.all_tasks() if t is not asyncio.current_task()] == []

    @pytest.mark.asyncio
    async def test_finished_work_returns_result(self):
        async def quick_dispatch():
            return "listo"

        request = _FakeRequest(connected_polls=0)
        assert await run_until_disconnect(request, quick_dispatch()) == "listo"
        assert request.polls == 0

    def test_disconnected_chat_returns_499(self, mock_settings, monkeypatch):
        state = {"cancelled": False}

        async def slow_handle(req, tokens):
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                state["cancelled"] = True
                raise

        dispatcher = _dispatcher(mock_settings)
        dispatcher.handle = slow_handle
        monkeypatch.setattr("starlette.requests.Request.is_disconnected", AsyncMock(return_value=True))
        client = TestClient(create_app(mock_settings, dispatcher))

        response = client.post("/api/chat", json={"message": "hola"})

        assert response.status_code == CLIENT_CLOSED_REQUEST
        assert state["cancelled"] is True


class TestLifespan:
    def test_services_survive_restart(self, mock_settings):
        app = create_app(mock_settings)
        services = app.state.dispatcher.services

        with TestClient(app):
            first = services.search._http
        assert first.is_closed

        with TestClient(app):
            assert not services.search._http.is_closed
            assert not services.calendar._http.is_closed
            assert services.drive._http is services.search._http
