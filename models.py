# models.py
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, TypeAdapter

Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    role: Role
    content: str


class ChatRequest(BaseModel):
    # userMessage is validated before sessionId
    userMessage: str = Field(..., description="User message")
    sessionId: str = Field(..., min_length=1, description="Client-generated session identifier")


class ClearRequest(BaseModel):
    sessionId: str = Field(..., min_length=1)


class Credentials(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ChatInput(BaseModel):
    original: str
    sanitized: str
    embeddings: List[Dict[str, Any]] = Field(default_factory=list)


class ChatMetrics(BaseModel):
    latencyMs: int
    historyLength: int


class ChatResponse(BaseModel):
    reply: str
    context: str = ""
    choices: Optional[List[Any]] = None
    input: ChatInput
    metrics: ChatMetrics
    refreshToken: Optional[str] = None


class ClearResponse(BaseModel):
    success: bool
    message: str


class TokenResponse(BaseModel):
    token: str


class VerifyResponse(BaseModel):
    username: str


_history_adapter = TypeAdapter(List[Message])


def history_from_json(raw: str) -> List[Message]:
    return _history_adapter.validate_json(raw)


def history_to_json(messages: List[Message]) -> str:
    return _history_adapter.dump_json(messages).decode("utf-8")
