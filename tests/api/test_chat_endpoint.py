"""
Test suite for chat API endpoints.

Tests POST /chat, POST /chat/stream (SSE) and the stop endpoint with
FastAPI TestClient and a mocked ChatService.

System role: Verification of chat HTTP API endpoint
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chatsync.api.deps import get_chat_service, get_session_registry, get_settings_dependency
from chatsync.api.routers.chat import router
from chatsync.configs import Settings
from chatsync.core.exceptions import ConcurrentStreamError, SessionNotFoundError, ValidationError
from chatsync.models.chat import ChatTurnResponse
from chatsync.models.message import MessageMetadata, MessageSender, MessageStatus
from chatsync.models.streaming import StreamEvent, StreamEventType
from tests.conftest import make_message

HEADERS = {"X-User-Id": "u1"}


@pytest.fixture
def app() -> FastAPI:
    """Create FastAPI test application with chat router."""
    app = FastAPI()
    app.include_router(router)
    return app


@pytest.fixture
def mock_chat_service() -> MagicMock:
    service = MagicMock()
    service.send_message = AsyncMock()
    return service


@pytest.fixture
def mock_registry() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def client(app, mock_chat_service, mock_registry) -> TestClient:
    """Provide TestClient with mocked services."""
    app.dependency_overrides[get_chat_service] = lambda: mock_chat_service
    app.dependency_overrides[get_session_registry] = lambda: mock_registry
    app.dependency_overrides[get_settings_dependency] = lambda: Settings(environment="production")
    return TestClient(app)


@pytest.fixture
def debug_client(app, client) -> TestClient:
    """Client whose settings allow technical error detail."""
    app.dependency_overrides[get_settings_dependency] = lambda: Settings(
        debug=True, environment="development"
    )
    return client


def _parse_sse(body: str) -> list[tuple[str, dict]]:
    frames = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((lines["event"], json.loads(lines["data"])))
    return frames


class TestChatEndpoint:
    """Test suite for POST /chat."""

    def test_chat_success(self, client, mock_chat_service) -> None:
        """Test a turn returns the user message and the reply."""
        user_message = make_message("What is Teaching Aptitude?", status=MessageStatus.SENT)
        reply = make_message(
            "Teaching aptitude is the natural ability to teach effectively.",
            sender=MessageSender.ASSISTANT,
            status=MessageStatus.SENDING,
            metadata=MessageMetadata(processing_time_ms=120.0),
        )
        mock_chat_service.send_message.return_value = ChatTurnResponse(
            session_id="s1", user_message=user_message, assistant_message=reply
        )

        response = client.post(
            "/chat", json={"message": "What is Teaching Aptitude?"}, headers=HEADERS
        )

        assert response.status_code == 200
        data = response.json()
        assert data["session_id"] == "s1"
        assert data["assistant_message"]["metadata"]["processing_time_ms"] == 120.0
        assert data["error_code"] is None
        mock_chat_service.send_message.assert_awaited_once_with(
            "u1", "What is Teaching Aptitude?", session_id=None
        )

    def test_chat_friendly_error_is_not_http_error(self, client, mock_chat_service) -> None:
        """Test a gateway failure still returns 200 with error_code set."""
        user_message = make_message("Hi", status=MessageStatus.SENT)
        reply = make_message(
            "Request timed out. Please try again.",
            sender=MessageSender.ASSISTANT,
            metadata=MessageMetadata(error_code="timeout"),
        )
        mock_chat_service.send_message.return_value = ChatTurnResponse(
            session_id="s1", user_message=user_message, assistant_message=reply, error_code="timeout"
        )

        response = client.post("/chat", json={"message": "Hi", "session_id": "s1"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["error_code"] == "timeout"

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (ValidationError("Message must not be empty", field="message"), 400),
            (SessionNotFoundError("s1"), 404),
            (ConcurrentStreamError("Streaming already in progress"), 409),
        ],
    )
    def test_chat_error_mapping(self, client, mock_chat_service, error, status_code) -> None:
        mock_chat_service.send_message.side_effect = error

        response = client.post("/chat", json={"message": "Hi", "session_id": "s1"}, headers=HEADERS)

        assert response.status_code == status_code
        assert response.json()["detail"] == error.message

    def test_chat_unexpected_error_hides_detail(self, client, mock_chat_service) -> None:
        mock_chat_service.send_message.side_effect = RuntimeError("db password=hunter2")

        response = client.post("/chat", json={"message": "Hi"}, headers=HEADERS)

        assert response.status_code == 500
        assert response.json()["detail"] == "Chat processing failed"

    def test_chat_unexpected_error_in_debug(self, debug_client, mock_chat_service) -> None:
        mock_chat_service.send_message.side_effect = RuntimeError("boom")

        response = debug_client.post("/chat", json={"message": "Hi"}, headers=HEADERS)

        assert response.status_code == 500
        assert response.json()["detail"] == "Chat processing failed: boom"

    def test_chat_requires_owner(self, client, mock_chat_service) -> None:
        response = client.post("/chat", json={"message": "Hi"})

        assert response.status_code == 401
        mock_chat_service.send_message.assert_not_called()


class TestChatStreamEndpoint:
    """Test suite for POST /chat/stream."""

    def test_stream_emits_sse_frames(self, client, mock_chat_service) -> None:
        """Test events from the service are framed as SSE in order."""
        calls = []

        async def fake_stream(owner_id, content, session_id=None):
            calls.append((owner_id, content, session_id))
            yield StreamEvent(event=StreamEventType.THINKING, data={"session_id": "s1"})
            yield StreamEvent(event=StreamEventType.TOKEN, data={"text": "Hel", "index": 0})
            yield StreamEvent(event=StreamEventType.TOKEN, data={"text": "Hello", "index": 1})
            yield StreamEvent(event=StreamEventType.COMPLETE, data={"session_id": "s1"})

        mock_chat_service.stream_message = fake_stream

        response = client.post(
            "/chat/stream", json={"message": "Hi", "session_id": "s1"}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = _parse_sse(response.text)
        assert [event for event, _ in frames] == ["thinking", "token", "token", "complete"]
        assert frames[2][1] == {"text": "Hello", "index": 1}
        assert calls == [("u1", "Hi", "s1")]

    @pytest.mark.parametrize(
        "use_debug, message",
        [(False, "Chat processing failed"), (True, "lost connection")],
    )
    def test_stream_unexpected_failure_emits_error_frame(
        self, request, mock_chat_service, use_debug, message
    ) -> None:
        client = request.getfixturevalue("debug_client" if use_debug else "client")

        async def broken_stream(owner_id, content, session_id=None):
            yield StreamEvent(event=StreamEventType.THINKING, data={"session_id": "s1"})
            raise RuntimeError("lost connection")

        mock_chat_service.stream_message = broken_stream

        response = client.post("/chat/stream", json={"message": "Hi"}, headers=HEADERS)

        frames = _parse_sse(response.text)
        assert frames[-1] == ("error", {"code": "PROCESSING_ERROR", "message": message})


class TestStopEndpoint:
    """Test suite for POST /sessions/{session_id}/chat/stop."""

    def test_stop(self, client, mock_chat_service, mock_registry) -> None:
        mock_chat_service.stop.return_value = True

        response = client.post("/sessions/s1/chat/stop", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"session_id": "s1", "stopped": True}
        mock_registry.get.assert_awaited_once_with("u1", "s1")
        mock_chat_service.stop.assert_called_once_with("s1")

    def test_stop_foreign_session(self, client, mock_chat_service, mock_registry) -> None:
        mock_registry.get.side_effect = SessionNotFoundError("s1")

        response = client.post("/sessions/s1/chat/stop", headers=HEADERS)

        assert response.status_code == 404
        mock_chat_service.stop.assert_not_called()
