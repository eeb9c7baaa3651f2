import pytest
import redis
from redis.exceptions import TimeoutError as RedisTimeoutError

from course_shop import redis_client
from course_shop.exceptions import RedisConnectionError
from course_shop.storage import MemoryStorage, RedisStorage, StorageAdapter


def test_memory_storage_read_write_remove():
    storage = MemoryStorage()
    assert storage.read("k") is None
    assert storage.write("k", "v") is True
    assert storage.read("k") == "v"
    assert storage.remove("k") is True
    assert storage.read("k") is None
    # Removing an absent key is still a success
    assert storage.remove("k") is True


def test_memory_storage_quota_failure_keeps_previous_value():
    storage = MemoryStorage(quota_bytes=20)
    assert storage.write("k", "small") is True
    assert storage.write("k", "x" * 100) is False
    assert storage.read("k") == "small"


def test_read_json_treats_garbage_as_absent():
    storage = MemoryStorage(data={"k": "{not json"})
    assert storage.read_json("k") is None


def test_write_json_rejects_unserializable_value():
    storage = MemoryStorage()
    assert storage.write_json("k", {"bad": object()}) is False
    assert storage.data == {}


def test_write_json_round_trip():
    storage = MemoryStorage()
    assert storage.write_json("k", {"items": [1, 2], "name": "Cafè"})
    assert storage.read_json("k") == {"items": [1, 2], "name": "Cafè"}


def test_scoped_views_share_backend_with_prefix():
    base = MemoryStorage()
    alice = base.scoped("storage:alice:")
    bob = base.scoped("storage:bob:")
    alice.write("cart", "[]")
    assert bob.read("cart") is None
    assert base.data == {"storage:alice:cart": "[]"}


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.set_calls = []

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ex=None):
        self.set_calls.append((key, ex))
        self.values[key] = value
        return True

    def delete(self, *keys):
        for key in keys:
            self.values.pop(key, None)
        return len(keys)


def test_redis_storage_uses_namespace_and_ttl():
    fake = FakeRedis()
    storage = RedisStorage(lambda: fake, ttl_seconds=60).scoped("storage:c1:")
    assert storage.write("cart", "[]") is True
    assert fake.set_calls == [("storage:c1:cart", 60)]
    assert storage.read("cart") == "[]"
    assert storage.remove("cart") is True
    assert fake.values == {}


def test_redis_storage_never_raises_when_unavailable():
    def unavailable():
        raise RedisConnectionError("Failed to connect to Redis: refused")

    storage = RedisStorage(unavailable)
    assert storage.read("cart") is None
    assert storage.write("cart", "[]") is False
    assert storage.remove("cart") is False
    assert storage.read_json("cart") is None


def test_redis_storage_failure_mid_operation():
    class Flaky(FakeRedis):
        def set(self, key, value, ex=None):
            raise RedisConnectionError("Redis operation failed after 3 retries: timeout")

    storage = RedisStorage(lambda: Flaky())
    assert storage.write_json("cart", []) is False



def test_redis_storage_survives_connect_timeout(monkeypatch):
    def timeout(self, **kwargs):
        raise RedisTimeoutError("Timeout connecting to server")

    monkeypatch.setattr(redis.Redis, "ping", timeout)
    monkeypatch.setattr(redis_client, "_redis_client", None)

    storage = RedisStorage(redis_client.get_redis_client)
    assert storage.read("cart") is None
    assert storage.write("cart", "[]") is False
    assert storage.remove("cart") is False


def test_adapter_without_scoped_cannot_be_instantiated():
    class Partial(StorageAdapter):
        def _get(self, key):
            return None

        def _set(self, key, raw):
            pass

        def _delete(self, key):
            pass

    with pytest.raises(TypeError):
        Partial()
