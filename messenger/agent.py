"""
Client for the real-time platform's AI agent REST API.

An agent is registered once (persona, LLM, voice); each call then runs an
agent instance inside a room. Media itself never passes through here.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from messenger.ai import get_system_prompt
from messenger.config import settings
from messenger.errors import UpstreamError
from messenger.kvstore import KeyValueStore

logger = logging.getLogger(__name__)

AGENT_NAME = "Anna"
AGENT_ID_KEY = "anna_agent_id"
PENDING_STATUSES = ("starting", "pending", "creating")


@dataclass
class AgentInstance:
    instance_id: str
    room_id: Optional[str]
    user_id: Optional[str]
    status: Optional[str]
    agent_status: Optional[str] = None  # idle|listening|thinking|speaking

    @classmethod
    def from_payload(cls, data: dict) -> "AgentInstance":
        return cls(
            instance_id=data.get("instance_id"),
            room_id=data.get("room_id"),
            user_id=data.get("user_id"),
            status=data.get("status"),
            agent_status=data.get("agent_status"),
        )


class AgentClient:
    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.app_id = settings.ZEGO_APP_ID
        self.start_timeout = settings.AGENT_START_TIMEOUT_SECONDS
        self.poll_interval = settings.AGENT_POLL_INTERVAL_SECONDS
        self._sleep = sleep
        self._clock = clock
        headers = {"authorization": f"Bearer {settings.ZEGO_TOKEN}"} if settings.ZEGO_TOKEN else {}
        self._client = httpx.Client(
            base_url=settings.ZEGO_BASE_URL,
            headers=headers,
            timeout=10.0,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, payload: dict) -> dict:
        body = {"app_id": self.app_id, **payload}
        try:
            r = self._client.post(path, json=body)
            r.raise_for_status()
            return r.json() if r.content else {}
        except httpx.HTTPStatusError as e:
            try:
                detail = e.response.json().get("message")
            except ValueError:
                detail = None
            detail = detail or e.response.reason_phrase
            logger.error(f"Agent API {path} failed: {e.response.status_code} {detail}")
            raise UpstreamError(f"agent platform error: {detail}") from e
        except httpx.HTTPError as e:
            logger.error(f"Agent API {path} unreachable: {e}")
            raise UpstreamError("agent platform unreachable") from e

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def register_agent(self, image_url: Optional[str] = None, voice_id: str = "anna_voice_female_01",
                       language: str = "ru-RU") -> str:
        payload: dict[str, Any] = {
            "agent_name": AGENT_NAME,
            "agent_type": "digital_human_video_call" if image_url else "voice_call",
            "llm_config": {
                "provider": "google",
                "model": settings.GOOGLE_AI_MODEL,
                "api_key": settings.GOOGLE_AI_API_KEY,
                "base_url": settings.GOOGLE_AI_BASE_URL,
                "system_prompt": get_system_prompt("normal"),
                "temperature": 0.9,
                "max_tokens": 2048,
            },
            "tts_config": {"provider": "volcano", "voice_id": voice_id, "speed": 1.0, "pitch": 1.0},
            "asr_config": {"provider": "tencent", "language": language},
            "audio_processing": {"ai_ans": True, "ai_vad": True, "ai_aec": True},
            "interruption_config": {"natural_voice_interruption": True, "manual_interruption": True},
        }
        if image_url:
            payload["digital_human_config"] = {
                "asset_type": "image_based",
                "image_url": image_url,
                "resolution": "1080p",
            }
        data = self._post("/agent/register", payload)
        logger.info(f"Agent registered: {data.get('agent_id')}")
        return data["agent_id"]

    def list_agents(self) -> list[dict]:
        return self._post("/agent/list", {}).get("agents") or []

    def get_agent(self, agent_id: str) -> dict:
        return self._post("/agent/query", {"agent_id": agent_id})

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def create_instance(self, agent_id: str, room_id: str, user_id: str,
                        digital_human: bool = False) -> AgentInstance:
        path = "/agent/instance/create_digital_human" if digital_human else "/agent/instance/create"
        data = self._post(path, {"agent_id": agent_id, "room_id": room_id, "user_id": user_id})
        instance = AgentInstance.from_payload(data)
        logger.info(f"Agent instance created: {instance.instance_id} in room {room_id}")
        return instance

    def get_instance_status(self, instance_id: str) -> AgentInstance:
        return AgentInstance.from_payload(
            self._post("/agent/instance/status", {"instance_id": instance_id})
        )

    def interrupt(self, instance_id: str) -> None:
        self._post("/agent/instance/interrupt", {"instance_id": instance_id})

    def delete_instance(self, instance_id: str) -> None:
        self._post("/agent/instance/delete", {"instance_id": instance_id})
        logger.info(f"Agent instance deleted: {instance_id}")

    def wait_until_ready(self, instance_id: str) -> AgentInstance:
        """
        Poll the instance until it leaves the starting states.

        Raises:
            UpstreamError: still starting after start_timeout seconds
        """
        deadline = self._clock() + self.start_timeout
        while True:
            instance = self.get_instance_status(instance_id)
            if instance.status not in PENDING_STATUSES:
                return instance
            if self._clock() >= deadline:
                logger.error(f"Agent instance {instance_id} not ready after {self.start_timeout}s")
                raise UpstreamError("AI agent initialization timeout")
            self._sleep(self.poll_interval)


def ensure_agent(client: AgentClient, kv: KeyValueStore, image_url: Optional[str] = None) -> str:
    """
    Id of the Anna agent, registering it only when needed.

    The cached id is reused while the platform still knows it; otherwise an
    existing agent named Anna is adopted, and only then a new one registered.
    """
    cached = kv.get(AGENT_ID_KEY)
    if cached:
        try:
            client.get_agent(cached)
            return cached
        except UpstreamError:
            logger.info("Cached agent id is no longer valid")

    existing = next((a for a in client.list_agents() if a.get("agent_name") == AGENT_NAME), None)
    agent_id = existing.get("agent_id") if existing else None
    if not agent_id:
        agent_id = client.register_agent(image_url=image_url)

    kv.set(AGENT_ID_KEY, agent_id)
    return agent_id
