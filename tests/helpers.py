import json
from typing import Callable, List, Optional

import httpx
from fastapi.testclient import TestClient

from completion import CompletionClient
from context import Retriever
from main import create_app
from settings import Settings
from store import InMemoryStore

ORIGIN = "http://localhost:5173"
COMPLETION_URL = "https://llm.test/v1/chat/completions"
VECTOR_URL = "https://vector.test/search"


def make_settings(**overrides) -> Settings:
    values = dict(
        GROQ_API_KEY="groq-test-key",
        COMPLETION_URL=COMPLETION_URL,
        VECTOR_API_URL="",
        ISSUER_SECRET="test-secret",
        REQUIRE_AUTH=False,
        ENFORCE_ORIGIN=False,
        CORS_ALLOW_ORIGINS=ORIGIN,
        KV_BACKEND="memory",
    )
    values.update(overrides)
    return Settings(**values)


class FakeService:
    """Records JSON request bodies and answers with ``respond(request, n)``."""

    def __init__(self, respond: Optional[Callable[[httpx.Request, int], httpx.Response]] = None):
        self.requests: List[dict] = []
        self.respond = respond or self.default

    @staticmethod
    def default(request: httpx.Request, n: int) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": f" reply {n} "}}]})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        return self.respond(request, len(self.requests))

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


class RecordingRedis:
    """Stands in for a redis client; records every call."""

    def __init__(self):
        self.data = {}
        self.calls = []

    def get(self, key):
        self.calls.append(("get", key))
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.calls.append(("set", key, ex))
        self.data[key] = value

    def delete(self, key):
        self.calls.append(("delete", key))
        self.data.pop(key, None)


class Harness:
    def __init__(self, history_store=None, **overrides):
        self.settings = make_settings(**overrides)
        self.history = history_store if history_store is not None else InMemoryStore()
        self.users = InMemoryStore()
        self.upstream = FakeService()
        self.vector = FakeService(lambda request, n: httpx.Response(200, json={"results": []}))
        self.app = create_app(
            settings=self.settings,
            history_store=self.history,
            user_store=self.users,
            retriever=Retriever(self.settings, client=self.vector.client()),
            completion=CompletionClient(self.settings, client=self.upstream.client()),
        )
        self.client = TestClient(self.app)

    def stored(self, session_id: str) -> Optional[list]:
        raw = self.history.get(session_id)
        return json.loads(raw) if raw else None

    def chat(self, session_id: str, message: str, **kwargs):
        return self.client.post("/", json={"sessionId": session_id, "userMessage": message}, **kwargs)
