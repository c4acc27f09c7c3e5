"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from focusmate_agent.server import app


@pytest.fixture
def mock_agent():
    agent = MagicMock()
    mock_message = MagicMock()
    mock_message.content = "You have two sessions tomorrow."
    agent.invoke.return_value = {"messages": [mock_message]}
    return agent


@pytest.fixture
def client(dispatcher, mock_agent):
    """Test client whose lifespan wires in the stub-backed dispatcher and a mock agent."""
    with patch("focusmate_agent.server.build_dispatcher", return_value=dispatcher), \
            patch("focusmate_agent.agent.create_focusmate_agent", return_value=mock_agent):
        with TestClient(app) as tc:
            yield tc


class TestHealthEndpoint:
    def test_health_reports_credential_state(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "focusmate-agent"
        assert data["credential"]["state"] == "absent"
        assert data["credential"]["authenticated"] is False

    def test_root_lists_links(self, client):
        data = client.get("/").json()
        assert data["health"] == "/api/health"
        assert data["tools"] == "/api/tools"


class TestToolEndpoints:
    def test_lists_four_tools(self, client):
        response = client.get("/api/tools")
        assert response.status_code == 200
        tools = {t["name"]: t for t in response.json()["tools"]}
        assert set(tools) == {"focusmate_auth", "book_session", "cancel_session", "list_sessions"}
        assert "start_time" in tools["book_session"]["parameters"]["properties"]

    def test_invoke_book(self, client, authenticated):
        response = client.post(
            "/api/tools/book_session",
            json={"start_time": "2026-03-03T14:30:00Z", "duration": "75"},
        )
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["success"] is True
        assert result["session"]["endTime"] == "2026-03-03T15:45:00Z"

    def test_tool_failure_is_still_200(self, client):
        response = client.post("/api/tools/list_sessions", json={"start_date": "2026-03-02T00:00:00Z"})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result == {
            "sessions": [],
            "totalCount": 0,
            "error": "Not authenticated. Please run focusmate_auth first.",
            "errorCode": "AUTH_REQUIRED",
        }

    def test_unknown_tool_is_404(self, client):
        response = client.post("/api/tools/reschedule_session", json={})
        assert response.status_code == 404

    def test_missing_argument_is_422(self, client, gateway):
        response = client.post("/api/tools/cancel_session", json={})
        assert response.status_code == 422
        assert gateway.calls == []


class TestChatEndpoint:
    def test_chat_returns_response(self, client):
        response = client.post(
            "/api/chat",
            json={"message": "What do I have tomorrow?", "session_id": "test-session-1"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["reply"] == "You have two sessions tomorrow."
        assert data["session_id"] == "test-session-1"

    def test_chat_passes_session_id(self, client, mock_agent):
        client.post("/api/chat", json={"message": "Hi!", "session_id": "my-unique-session"})
        call_args = mock_agent.invoke.call_args
        assert call_args[1]["config"]["configurable"]["thread_id"] == "my-unique-session"

    def test_chat_validates_empty_message(self, client):
        response = client.post("/api/chat", json={"message": "", "session_id": "s"})
        assert response.status_code == 422

    def test_chat_handles_agent_error(self, client, mock_agent):
        mock_agent.invoke.side_effect = RuntimeError("LLM exploded")
        response = client.post("/api/chat", json={"message": "Hello!", "session_id": "s"})
        assert response.status_code == 500
        detail = response.json()["detail"]
        assert "LLM exploded" not in detail
        assert "internal error" in detail.lower()

    def test_chat_unavailable_without_agent(self, client):
        app.state.agent = None
        response = client.post("/api/chat", json={"message": "Hello!", "session_id": "s1"})
        assert response.status_code == 503

    def test_client_supplied_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "my-trace-id-123"})
        assert response.headers["X-Request-ID"] == "my-trace-id-123"


class TestLifespanWithoutLLMKey:
    def test_agent_disabled_when_key_missing(self, dispatcher, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with patch("focusmate_agent.server.build_dispatcher", return_value=dispatcher), \
                patch("focusmate_agent.config._ON_AWS", False):
            with TestClient(app) as tc:
                assert app.state.agent is None
                assert tc.get("/api/tools").status_code == 200
