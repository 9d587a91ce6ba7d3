# completion.py
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional

import httpx

from errors import UpstreamError
from models import Message
from settings import Settings

logger = logging.getLogger("baymax.completion")

NO_REPLY = "Model returned no reply"


@dataclass
class Completion:
    reply: str
    raw_reply: str
    choices: Optional[List[Any]]
    latency_ms: int


def extract_reply(data: Any) -> str:
    """Pull the reply text out of a chat-completion body.

    Tries ``choices[0].message.content``, then ``choices[0].text``, then a
    flat ``reply`` field, and falls back to a placeholder.
    """
    if not isinstance(data, dict):
        return NO_REPLY
    choices = data.get("choices")
    first = choices[0] if isinstance(choices, list) and choices else None
    if isinstance(first, dict):
        message = first.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
        if isinstance(first.get("text"), str):
            return first["text"]
    if isinstance(data.get("reply"), str):
        return data["reply"]
    return NO_REPLY


class CompletionClient:
    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=settings.HTTP_TIMEOUT)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def complete(self, messages: List[Message]) -> Completion:
        payload = {
            "model": self._settings.MODEL_NAME,
            "messages": [m.model_dump() for m in messages],
            "temperature": self._settings.TEMPERATURE,
        }
        headers = {"Authorization": f"Bearer {self._settings.GROQ_API_KEY}"}

        start = time.monotonic()
        try:
            response = self._client.post(self._settings.COMPLETION_URL, json=payload, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("Completion API unreachable: %s", exc)
            raise UpstreamError(None, str(exc)) from exc
        latency_ms = int((time.monotonic() - start) * 1000)

        if not response.is_success:
            logger.warning("Completion API returned %s", response.status_code)
            raise UpstreamError(response.status_code, response.text or "<no-body>")

        try:
            data = response.json()
        except ValueError:
            data = None
        raw = extract_reply(data)
        choices = data.get("choices") if isinstance(data, dict) else None
        return Completion(
            reply=raw.strip(),
            raw_reply=raw,
            choices=choices if isinstance(choices, list) else None,
            latency_ms=latency_ms,
        )
