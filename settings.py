# settings.py
import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

DEFAULT_SYSTEM_PROMPT = "You are Baymax, a friendly medical AI giving safe health advice."


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    # completion API (OpenAI-compatible chat completions)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY", "")
    COMPLETION_URL: str = os.getenv(
        "COMPLETION_URL", "https://api.groq.com/openai/v1/chat/completions"
    )
    MODEL_NAME: str = os.getenv("MODEL_NAME", "llama-3.1-8b-instant")
    TEMPERATURE: float = float(os.getenv("TEMPERATURE", "0.7"))
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30"))

    # retrieval; empty disables context enrichment
    VECTOR_API_URL: str = os.getenv("VECTOR_API_URL", "")

    # history knobs
    SYSTEM_PROMPT: str = os.getenv("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)
    MAX_HISTORY: int = int(os.getenv("MAX_HISTORY", "20"))
    HISTORY_TTL: int = int(os.getenv("HISTORY_TTL", str(60 * 60 * 24 * 30)))
    MAX_MESSAGE_LENGTH: int = int(os.getenv("MAX_MESSAGE_LENGTH", "20000"))

    # auth
    ISSUER_SECRET: str = os.getenv("ISSUER_SECRET", "")
    TOKEN_EXPIRY: int = int(os.getenv("TOKEN_EXPIRY", "3600"))
    TOKEN_REFRESH_THRESHOLD: int = int(os.getenv("TOKEN_REFRESH_THRESHOLD", "60"))
    REQUIRE_AUTH: bool = _flag("REQUIRE_AUTH", "true")

    # origins
    ENFORCE_ORIGIN: bool = _flag("ENFORCE_ORIGIN", "true")
    CORS_ALLOW_ORIGINS: str = os.getenv(
        "CORS_ALLOW_ORIGINS", "https://baymax.onslaught2342.qzz.io,http://localhost:5173"
    )

    # storage
    KV_BACKEND: str = os.getenv("KV_BACKEND", "redis")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
