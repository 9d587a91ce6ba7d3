# store.py
"""Key-value persistence for session history and user records.

Plain get/put/delete with an optional TTL. There is no compare-and-set, so
concurrent writers to the same key race and the last write wins.
"""
import threading
import time
from typing import Dict, Optional, Protocol, Tuple

import redis

from settings import Settings


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    def delete(self, key: str) -> None: ...


class RedisStore:
    def __init__(self, client: "redis.Redis", prefix: str = "") -> None:
        self.r = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        return self.r.get(self._key(key))

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self.r.set(self._key(key), value, ex=ttl)

    def delete(self, key: str) -> None:
        self.r.delete(self._key(key))


class InMemoryStore:
    def __init__(self) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= time.time():
                del self._data[key]
                return None
            return value

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = time.time() + ttl if ttl else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


def build_stores(settings: Settings) -> Tuple[KeyValueStore, KeyValueStore]:
    """Return ``(history_store, user_store)`` for the configured backend."""
    if settings.KV_BACKEND == "memory":
        return InMemoryStore(), InMemoryStore()
    if settings.KV_BACKEND != "redis":
        raise ValueError(f"unknown KV_BACKEND: {settings.KV_BACKEND}")
    client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return RedisStore(client, prefix="chat:"), RedisStore(client, prefix="user:")
