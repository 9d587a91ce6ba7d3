import store as store_module
from settings import Settings
from store import InMemoryStore, RedisStore, build_stores
from tests.helpers import RecordingRedis


def test_in_memory_store_get_put_delete():
    kv = InMemoryStore()
    assert kv.get("s1") is None
    kv.put("s1", "[]")
    assert kv.get("s1") == "[]"
    kv.delete("s1")
    kv.delete("s1")
    assert kv.get("s1") is None


def test_in_memory_store_expires_entries(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(store_module.time, "time", lambda: now[0])
    kv = InMemoryStore()
    kv.put("s1", "v", ttl=10)
    now[0] += 9
    assert kv.get("s1") == "v"
    now[0] += 1
    assert kv.get("s1") is None


def test_redis_store_prefixes_keys_and_sets_ttl():
    client = RecordingRedis()
    kv = RedisStore(client, prefix="chat:")
    kv.put("s1", "[]", ttl=2592000)
    assert kv.get("s1") == "[]"
    kv.delete("s1")
    assert client.calls == [
        ("set", "chat:s1", 2592000),
        ("get", "chat:s1"),
        ("delete", "chat:s1"),
    ]


def test_build_stores_memory_backend():
    history, users = build_stores(Settings(KV_BACKEND="memory"))
    assert isinstance(history, InMemoryStore)
    assert isinstance(users, InMemoryStore)
    assert history is not users


def test_build_stores_redis_backend_namespaces():
    history, users = build_stores(Settings(KV_BACKEND="redis", REDIS_URL="redis://localhost:6379/0"))
    assert isinstance(history, RedisStore)
    assert (history.prefix, users.prefix) == ("chat:", "user:")
    assert history.r is users.r
