"""
Tests for Anna, the AI assistant.

Tests cover:
- Request shape sent to the generative-AI API
- SSE parsing and buffering
- Retry with linear backoff, and no retry after the first chunk
- Conversation endpoints, buffered and streamed replies
"""

import json

import httpx
import pytest

from messenger.ai import AISettings, AnnaClient
from messenger.auth import get_anna_client
from messenger.errors import UpstreamError
from messenger.main import app


def sse(*texts: str) -> bytes:
    events = [
        "data: " + json.dumps({"candidates": [{"content": {"parts": [{"text": t}], "role": "model"}}]})
        for t in texts
    ]
    return ("\n\n".join(events) + "\n\n").encode("utf-8")


class BrokenStream(httpx.SyncByteStream):
    """Delivers one event, then the connection drops."""

    def __iter__(self):
        yield sse("Половина")
        raise httpx.ReadError("connection reset")


def make_client(handler, sleeps=None, max_attempts=3) -> AnnaClient:
    settings = AISettings(
        api_key="test-key",
        model="gemini-pro",
        base_url="https://ai.test/v1beta",
        max_attempts=max_attempts,
        backoff_seconds=1.0,
    )
    return AnnaClient(
        ai_settings=settings,
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


USER_TURN = [{"role": "user", "content": "Привет"}]


class TestAnnaClient:
    def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=sse("ok"))

        turns = [
            {"role": "user", "content": "Q1"},
            {"role": "model", "content": "A1"},
            {"role": "user", "content": "Q2"},
        ]
        make_client(handler).get_response(turns, mode="tech")

        assert seen["url"].path == "/v1beta/models/gemini-pro:streamGenerateContent"
        assert seen["url"].params["alt"] == "sse"
        body = seen["body"]
        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["contents"][2]["parts"] == [{"text": "Q2"}]
        assert body["generationConfig"] == {"temperature": 0.7, "topK": 40, "topP": 0.95, "maxOutputTokens": 2048}
        assert "technical" in body["systemInstruction"]["parts"][0]["text"]

    def test_normal_mode_temperature(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=sse("ok"))

        make_client(handler).get_response(USER_TURN, mode="normal")

        assert seen["body"]["generationConfig"]["temperature"] == 0.9

    def test_chunks_are_streamed_and_buffered(self):
        client = make_client(lambda request: httpx.Response(200, content=sse("При", "вет", "!")))

        assert list(client.stream_response(USER_TURN)) == ["При", "вет", "!"]
        assert client.get_response(USER_TURN) == "Привет!"

    def test_nothing_without_a_trailing_user_turn(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, content=sse("never"))

        client = make_client(handler)

        assert client.get_response([{"role": "model", "content": "hi"}]) == ""
        assert client.get_response([]) == ""
        assert calls == []

    def test_retries_with_linear_backoff(self):
        attempts = []
        sleeps = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503, json={"error": "overloaded"})
            return httpx.Response(200, content=sse("third time"))

        reply = make_client(handler, sleeps=sleeps).get_response(USER_TURN)

        assert reply == "third time"
        assert len(attempts) == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self):
        attempts = []
        sleeps = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("unreachable")

        with pytest.raises(UpstreamError):
            make_client(handler, sleeps=sleeps).get_response(USER_TURN)

        assert len(attempts) == 3
        assert sleeps == [1.0, 2.0]

    def test_no_retry_after_first_chunk(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(200, stream=BrokenStream())

        received = []
        with pytest.raises(UpstreamError):
            for text in make_client(handler).stream_response(USER_TURN):
                received.append(text)

        assert received == ["Половина"]
        assert len(attempts) == 1


@pytest.fixture
def anna(client, login):
    """Signed-in user plus a way to plug a fake AI backend into the app."""
    _, headers = login("+79990000001")

    def use(handler, sleeps=None):
        app.dependency_overrides[get_anna_client] = lambda: make_client(handler, sleeps=sleeps)

    return headers, use


class TestConversationEndpoints:
    def test_create_list_and_switch_mode(self, client, anna):
        headers, _ = anna
        created = client.post("/anna/conversations", json={"mode": "tech"}, headers=headers).json()

        assert created["mode"] == "tech"
        assert created["messages"] == []
        assert [c["id"] for c in client.get("/anna/conversations", headers=headers).json()] == [created["id"]]

        switched = client.put(f"/anna/conversations/{created['id']}/mode", json={"mode": "normal"}, headers=headers)
        assert switched.json()["mode"] == "normal"

    def test_invalid_mode_is_422(self, client, anna):
        headers, _ = anna
        assert client.post("/anna/conversations", json={"mode": "pirate"}, headers=headers).status_code == 422

    def test_foreign_conversation_is_404(self, client, anna, login):
        headers, _ = anna
        _, other_headers = login("+79990000002")
        created = client.post("/anna/conversations", json={}, headers=headers).json()

        assert client.get(f"/anna/conversations/{created['id']}", headers=other_headers).status_code == 404

    def test_buffered_reply_is_persisted(self, client, anna):
        headers, use = anna
        use(lambda request: httpx.Response(200, content=sse("Здравствуйте", ", чем помочь?")))
        created = client.post("/anna/conversations", json={}, headers=headers).json()

        response = client.post(
            f"/anna/conversations/{created['id']}/messages", json={"content": "Привет"}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["reply"] == "Здравствуйте, чем помочь?"
        stored = client.get(f"/anna/conversations/{created['id']}", headers=headers).json()["messages"]
        assert [(t["role"], t["content"]) for t in stored] == [
            ("user", "Привет"),
            ("model", "Здравствуйте, чем помочь?"),
        ]

    def test_upstream_failure_is_502_and_keeps_user_turn(self, client, anna):
        headers, use = anna
        use(lambda request: httpx.Response(500, json={"error": "boom"}))
        created = client.post("/anna/conversations", json={}, headers=headers).json()

        response = client.post(
            f"/anna/conversations/{created['id']}/messages", json={"content": "Привет"}, headers=headers
        )

        assert response.status_code == 502
        stored = client.get(f"/anna/conversations/{created['id']}", headers=headers).json()["messages"]
        assert [t["role"] for t in stored] == ["user"]

    def test_streamed_reply(self, client, anna):
        headers, use = anna
        use(lambda request: httpx.Response(200, content=sse("Раз", " два", " три")))
        created = client.post("/anna/conversations", json={}, headers=headers).json()

        response = client.post(
            f"/anna/conversations/{created['id']}/messages/stream", json={"content": "Считай"}, headers=headers
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "Раз два три"
        stored = client.get(f"/anna/conversations/{created['id']}", headers=headers).json()["messages"]
        assert stored[-1] == {"role": "model", "content": "Раз два три", "timestamp": stored[-1]["timestamp"]}

    def test_stream_provider_down_is_502(self, client, anna):
        headers, use = anna
        use(lambda request: httpx.Response(503))
        created = client.post("/anna/conversations", json={}, headers=headers).json()

        response = client.post(
            f"/anna/conversations/{created['id']}/messages/stream", json={"content": "Считай"}, headers=headers
        )

        assert response.status_code == 502
