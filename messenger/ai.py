"""
Anna, the AI assistant: client for the hosted generative-AI API.

Replies are streamed over server-sent events and yielded chunk by chunk.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence

import httpx

from messenger.config import settings
from messenger.errors import UpstreamError
from messenger.metrics import record_ai_stream_attempt

logger = logging.getLogger(__name__)


SYSTEM_PROMPTS = {
    "normal": (
        "You are Anna, an AI assistant created by NULLXES, a cybersecurity AI corporation. "
        "You are friendly, helpful, and professional. Your responses should be clear, concise, "
        "and helpful. You assist users with various tasks while maintaining a professional yet "
        "approachable tone.\n\n"
        "Key characteristics:\n"
        "- Friendly and approachable\n"
        "- Professional and knowledgeable\n"
        "- Clear and concise communication\n"
        "- Helpful problem-solving approach\n"
        "- Respectful of user privacy and security\n\n"
        "Always respond in Russian unless the user explicitly asks for another language."
    ),
    "tech": (
        "You are Anna, a technical AI assistant created by NULLXES, a cybersecurity AI corporation. "
        "You specialize in providing detailed, code-focused responses with technical depth. You "
        "excel at explaining complex technical concepts, debugging code, and providing in-depth "
        "technical analysis.\n\n"
        "Key characteristics:\n"
        "- Highly technical and detailed\n"
        "- Code-focused with examples\n"
        "- Deep technical knowledge\n"
        "- Problem-solving oriented\n"
        "- Security-conscious\n"
        "- Precise and accurate\n\n"
        "Always provide code examples when relevant. Use technical terminology appropriately. "
        "Always respond in Russian unless the user explicitly asks for another language."
    ),
}


def get_system_prompt(mode: str) -> str:
    return SYSTEM_PROMPTS.get(mode, SYSTEM_PROMPTS["normal"])


def generation_config(mode: str) -> dict:
    return {
        "temperature": 0.7 if mode == "tech" else 0.9,
        "topK": 40,
        "topP": 0.95,
        "maxOutputTokens": 2048,
    }


@dataclass
class AISettings:
    api_key: str
    model: str
    base_url: str
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    timeout: float = 60.0

    @classmethod
    def from_settings(cls) -> "AISettings":
        return cls(
            api_key=settings.GOOGLE_AI_API_KEY,
            model=settings.GOOGLE_AI_MODEL,
            base_url=settings.GOOGLE_AI_BASE_URL,
            max_attempts=settings.AI_STREAM_MAX_ATTEMPTS,
            backoff_seconds=settings.AI_STREAM_BACKOFF_SECONDS,
        )


class AnnaClient:
    """
    Streams Anna's replies from the generative-AI REST API.

    Each turn is a dict with "role" ("user" or "model") and "content".
    """

    def __init__(
        self,
        ai_settings: Optional[AISettings] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = ai_settings or AISettings.from_settings()
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def build_request(self, turns: Sequence[dict], mode: str) -> dict:
        contents = [
            {
                "role": "user" if turn["role"] == "user" else "model",
                "parts": [{"text": turn["content"]}],
            }
            for turn in turns
        ]
        return {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": get_system_prompt(mode)}]},
            "generationConfig": generation_config(mode),
        }

    def _stream_once(self, body: dict) -> Iterator[str]:
        url = f"/models/{self.settings.model}:streamGenerateContent"
        params = {"alt": "sse", "key": self.settings.api_key}
        with self._client.stream("POST", url, params=params, json=body) as response:
            response.raise_for_status()
            for line in response.iter_lines():
                if not line.startswith("data:"):
                    continue
                payload = line[len("data:"):].strip()
                if not payload:
                    continue
                chunk = json.loads(payload)
                for candidate in chunk.get("candidates") or []:
                    for part in (candidate.get("content") or {}).get("parts") or []:
                        text = part.get("text")
                        if text:
                            yield text

    def stream_response(self, turns: Sequence[dict], mode: str = "normal") -> Iterator[str]:
        """
        Yield reply chunks for the conversation ``turns``.

        Nothing is produced unless the last turn is a user turn. A request
        that fails before its first chunk is retried up to max_attempts
        times, waiting attempt * backoff_seconds between tries. A failure
        after text has been yielded is raised as is.

        Raises:
            UpstreamError: all attempts failed
        """
        if not turns or turns[-1].get("role") != "user":
            logger.debug("Last turn is not a user turn, nothing to answer")
            return

        body = self.build_request(turns, mode)
        attempts = max(1, self.settings.max_attempts)
        for attempt in range(1, attempts + 1):
            produced = False
            try:
                for text in self._stream_once(body):
                    produced = True
                    yield text
                record_ai_stream_attempt("ok")
                return
            except (httpx.HTTPError, ValueError) as e:
                if produced:
                    record_ai_stream_attempt("failed")
                    logger.error(f"AI stream broke mid-reply: {e}")
                    raise UpstreamError("AI reply interrupted") from e
                if attempt == attempts:
                    record_ai_stream_attempt("failed")
                    logger.error(f"AI stream failed after {attempts} attempts: {e}")
                    raise UpstreamError("AI service unavailable") from e
                record_ai_stream_attempt("retry")
                delay = self.settings.backoff_seconds * attempt
                logger.warning(f"AI stream attempt {attempt} failed, retrying in {delay}s: {e}")
                self._sleep(delay)

    def get_response(self, turns: Sequence[dict], mode: str = "normal") -> str:
        """Buffer the full streamed reply."""
        return "".join(self.stream_response(turns, mode))
