"""
Tests for the real-time AI agent client and the agent session endpoints.
"""

import json

import httpx
import pytest

from messenger.agent import AGENT_ID_KEY, AgentClient, ensure_agent
from messenger.auth import get_agent_client
from messenger.errors import UpstreamError
from messenger.kvstore import KeyValueStore
from messenger.main import app


class FakePlatform:
    """In-memory stand-in for the agent REST API."""

    def __init__(self, statuses=("starting", "running"), agents=None):
        self.statuses = list(statuses)
        self.agents = list(agents or [])
        self.calls = []
        self.deleted = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        path = request.url.path.removeprefix("/v1")
        self.calls.append(path)

        if path == "/agent/register":
            agent = {"agent_id": f"agent-{len(self.agents) + 1}", "agent_name": body["agent_name"]}
            self.agents.append(agent)
            return httpx.Response(200, json={"agent_id": agent["agent_id"]})
        if path == "/agent/list":
            return httpx.Response(200, json={"agents": self.agents})
        if path == "/agent/query":
            if any(a["agent_id"] == body["agent_id"] for a in self.agents):
                return httpx.Response(200, json={"agent_id": body["agent_id"]})
            return httpx.Response(404, json={"message": "agent not found"})
        if path in ("/agent/instance/create", "/agent/instance/create_digital_human"):
            return httpx.Response(200, json={
                "instance_id": "inst-1",
                "room_id": body["room_id"],
                "user_id": body["user_id"],
                "status": "starting",
            })
        if path == "/agent/instance/status":
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return httpx.Response(200, json={
                "instance_id": body["instance_id"],
                "status": status,
                "agent_status": "listening" if status == "running" else None,
            })
        if path == "/agent/instance/interrupt":
            return httpx.Response(200, json={})
        if path == "/agent/instance/delete":
            self.deleted.append(body["instance_id"])
            return httpx.Response(200, json={})
        return httpx.Response(404, json={"message": "unknown endpoint"})


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += max(seconds, 1.0)


def make_client(platform: FakePlatform, clock: FakeClock = None) -> AgentClient:
    clock = clock or FakeClock()
    return AgentClient(transport=httpx.MockTransport(platform), sleep=clock.sleep, clock=clock)


class TestAgentClient:
    def test_create_instance_payload(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"instance_id": "i1", "status": "starting"})

        client = AgentClient(transport=httpx.MockTransport(handler))
        instance = client.create_instance("agent-1", "room-9", "user-3", digital_human=True)

        path, body = seen[0]
        assert path.endswith("/agent/instance/create_digital_human")
        assert body["agent_id"] == "agent-1"
        assert body["room_id"] == "room-9"
        assert body["user_id"] == "user-3"
        assert "app_id" in body
        assert instance.instance_id == "i1"

    def test_register_voice_agent(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"agent_id": "agent-7"})

        agent_id = AgentClient(transport=httpx.MockTransport(handler)).register_agent()

        assert agent_id == "agent-7"
        assert seen[0]["agent_name"] == "Anna"
        assert seen[0]["agent_type"] == "voice_call"
        assert "digital_human_config" not in seen[0]
        assert seen[0]["llm_config"]["system_prompt"].startswith("You are Anna")

    def test_http_error_becomes_upstream_error(self):
        client = AgentClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(500, json={"message": "internal"})
        ))

        with pytest.raises(UpstreamError, match="internal"):
            client.interrupt("i1")

    def test_wait_until_ready_polls_past_starting(self):
        platform = FakePlatform(statuses=("starting", "pending", "running"))

        instance = make_client(platform).wait_until_ready("inst-1")

        assert instance.status == "running"
        assert instance.agent_status == "listening"
        assert platform.calls.count("/agent/instance/status") == 3

    def test_wait_until_ready_times_out_after_30_seconds(self):
        clock = FakeClock()
        platform = FakePlatform(statuses=("starting",))

        with pytest.raises(UpstreamError, match="timeout"):
            make_client(platform, clock).wait_until_ready("inst-1")

        assert clock.now >= 30.0


class TestEnsureAgent:
    def test_registers_once_and_caches(self, db):
        kv = KeyValueStore(db)
        platform = FakePlatform()
        client = make_client(platform)

        first = ensure_agent(client, kv)
        second = ensure_agent(client, kv)

        assert first == second
        assert kv.get(AGENT_ID_KEY) == first
        assert platform.calls.count("/agent/register") == 1

    def test_adopts_existing_agent_by_name(self, db):
        kv = KeyValueStore(db)
        platform = FakePlatform(agents=[{"agent_id": "existing", "agent_name": "Anna"}])

        assert ensure_agent(make_client(platform), kv) == "existing"
        assert "/agent/register" not in platform.calls

    def test_stale_cached_id_is_replaced(self, db):
        kv = KeyValueStore(db)
        kv.set(AGENT_ID_KEY, "gone")
        platform = FakePlatform()

        agent_id = ensure_agent(make_client(platform), kv)

        assert agent_id != "gone"
        assert kv.get(AGENT_ID_KEY) == agent_id


class TestAgentSessionEndpoints:
    @pytest.fixture
    def session_setup(self, client, login):
        user, headers = login("+79990000001")
        platform = FakePlatform(statuses=("starting", "running"))
        app.dependency_overrides[get_agent_client] = lambda: make_client(platform)
        return headers, platform, user

    def test_start_session_waits_until_ready(self, client, session_setup):
        headers, platform, user = session_setup

        response = client.post("/anna/agent/sessions", json={"room_id": "room-1"}, headers=headers)

        assert response.status_code == 201
        data = response.json()
        assert data["instance_id"] == "inst-1"
        assert data["status"] == "running"
        assert data["agent_id"] == "agent-1"
        assert data["room_id"] == "room-1"
        assert data["user_id"] == user["id"]
        assert data["agent_status"] == "listening"

    def test_session_lifecycle(self, client, session_setup):
        headers, platform, _ = session_setup
        client.post("/anna/agent/sessions", json={"room_id": "room-1"}, headers=headers)

        assert client.get("/anna/agent/sessions/inst-1", headers=headers).json()["status"] == "running"
        assert client.post("/anna/agent/sessions/inst-1/interrupt", headers=headers).status_code == 200
        assert client.delete("/anna/agent/sessions/inst-1", headers=headers).status_code == 200
        assert platform.deleted == ["inst-1"]
        assert client.get("/anna/agent/sessions/inst-1", headers=headers).status_code == 404

    def test_other_users_cannot_touch_session(self, client, session_setup, login):
        headers, _, _ = session_setup
        _, other_headers = login("+79990000002")
        client.post("/anna/agent/sessions", json={"room_id": "room-1"}, headers=headers)

        assert client.delete("/anna/agent/sessions/inst-1", headers=other_headers).status_code == 404

    def test_start_timeout_tears_instance_down(self, client, login):
        _, headers = login("+79990000001")
        platform = FakePlatform(statuses=("starting",))
        app.dependency_overrides[get_agent_client] = lambda: make_client(platform)

        response = client.post("/anna/agent/sessions", json={"room_id": "room-1"}, headers=headers)

        assert response.status_code == 502
        assert platform.deleted == ["inst-1"]
