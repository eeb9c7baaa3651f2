"""
Persistence adapters: durable key/value blobs with no business logic.

Adapters never raise to their callers. Backend failures are logged and
reported as an absent value (read) or a failed write (False), so stores
can keep working from memory and retry on their next mutation.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from course_shop.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class StorageAdapter(ABC):
    """Base adapter; backends implement the raw _get/_set/_delete calls"""

    def __init__(self, namespace: str = ""):
        self.namespace = namespace

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    @abstractmethod
    def scoped(self, namespace: str) -> "StorageAdapter":
        """Same backend, keys prefixed with namespace"""
        ...

    @abstractmethod
    def _get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def _set(self, key: str, raw: str) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    def read(self, key: str) -> Optional[str]:
        try:
            return self._get(self._full_key(key))
        except PersistenceError as e:
            logger.warning("Storage read failed", extra={"key": key, "error": str(e)})
            return None

    def write(self, key: str, raw: str) -> bool:
        try:
            self._set(self._full_key(key), raw)
            return True
        except PersistenceError as e:
            logger.warning("Storage write failed", extra={"key": key, "error": str(e)})
            return False

    def remove(self, key: str) -> bool:
        try:
            self._delete(self._full_key(key))
            return True
        except PersistenceError as e:
            logger.warning("Storage remove failed", extra={"key": key, "error": str(e)})
            return False

    def read_json(self, key: str) -> Optional[Any]:
        """Read and decode a JSON blob; undecodable blobs count as absent"""
        raw = self.read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("Discarding undecodable blob", extra={"key": key, "error": str(e)})
            return None

    def write_json(self, key: str, value: Any) -> bool:
        try:
            raw = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            logger.warning("Cannot serialize value", extra={"key": key, "error": str(e)})
            return False
        return self.write(key, raw)


class MemoryStorage(StorageAdapter):
    """
    In-process storage, shaped like browser localStorage.

    An optional byte quota makes writes fail the way a full localStorage
    does; namespaced views share the same backing dict through scoped().
    """

    def __init__(
        self,
        namespace: str = "",
        quota_bytes: Optional[int] = None,
        data: Optional[Dict[str, str]] = None
    ):
        super().__init__(namespace)
        self.quota_bytes = quota_bytes
        self.data: Dict[str, str] = {} if data is None else data

    def scoped(self, namespace: str) -> "MemoryStorage":
        return MemoryStorage(namespace=namespace, quota_bytes=self.quota_bytes, data=self.data)

    def _used_bytes(self, excluding: str) -> int:
        return sum(
            len(k.encode("utf-8")) + len(v.encode("utf-8"))
            for k, v in self.data.items()
            if k != excluding
        )

    def _get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def _set(self, key: str, raw: str) -> None:
        if self.quota_bytes is not None:
            needed = self._used_bytes(key) + len(key.encode("utf-8")) + len(raw.encode("utf-8"))
            if needed > self.quota_bytes:
                raise PersistenceError(f"Quota exceeded: {needed} > {self.quota_bytes} bytes")
        self.data[key] = raw

    def _delete(self, key: str) -> None:
        self.data.pop(key, None)


class RedisStorage(StorageAdapter):
    """Storage backed by Redis string keys, one key per collection"""

    def __init__(
        self,
        client_factory: Callable,
        namespace: str = "",
        ttl_seconds: Optional[int] = None
    ):
        super().__init__(namespace)
        self._client_factory = client_factory
        self.ttl_seconds = ttl_seconds

    def scoped(self, namespace: str) -> "RedisStorage":
        return RedisStorage(self._client_factory, namespace=namespace, ttl_seconds=self.ttl_seconds)

    def _client(self):
        # Connection is retried lazily on every call until it succeeds
        return self._client_factory()

    def _get(self, key: str) -> Optional[str]:
        return self._client().get(key)

    def _set(self, key: str, raw: str) -> None:
        self._client().set(key, raw, ex=self.ttl_seconds)

    def _delete(self, key: str) -> None:
        self._client().delete(key)
