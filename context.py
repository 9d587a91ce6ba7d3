# context.py
"""Best-effort retrieval context from the vector-search service."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from settings import Settings

logger = logging.getLogger("baymax.context")


@dataclass
class ContextResult:
    available: bool
    text: str = ""
    results: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def unavailable(cls) -> "ContextResult":
        return cls(available=False)


def format_result(item: Dict[str, Any]) -> str:
    name = item.get("Medicine Name") or "Unknown"
    use = item.get("Uses") or "N/A"
    side = item.get("Side_effects") or "None listed"
    return f"• {name}: Used for {use}. Side effects: {side}"


class Retriever:
    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None) -> None:
        self._url = settings.VECTOR_API_URL
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=settings.HTTP_TIMEOUT)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch(self, query: str) -> ContextResult:
        if not self._url:
            return ContextResult.unavailable()
        try:
            response = self._client.post(self._url, json={"query": query})
            response.raise_for_status()
            data = response.json()
        except Exception as exc:
            logger.warning("Vector search unavailable: %s", exc)
            return ContextResult.unavailable()

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            logger.warning("Vector search returned no usable results")
            return ContextResult.unavailable()
        results = [r for r in results if isinstance(r, dict)]
        if not results:
            return ContextResult.unavailable()

        text = "\n".join(format_result(r) for r in results)
        return ContextResult(available=True, text=text, results=results)
