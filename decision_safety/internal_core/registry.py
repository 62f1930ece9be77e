from __future__ import annotations

"""
Shared keyed registry behind quarantine entries and anomaly baselines.

Design intent:
- Expose only the four hash operations the security stores need.
- Surface every store failure as RegistryError so callers branch on one type.
- Keep a lock-guarded in-process variant for tests and single-node runs.
"""

from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, Optional

from redis import Redis
from redis.exceptions import RedisError


class RegistryError(RuntimeError):
    def __init__(self, code: str, message: str, backend: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.backend = backend


class HashRegistry(ABC):
    @abstractmethod
    def hset(self, key: str, field: str, value: str) -> None: ...

    @abstractmethod
    def hget(self, key: str, field: str) -> Optional[str]: ...

    @abstractmethod
    def hdel(self, key: str, field: str) -> bool: ...

    @abstractmethod
    def hgetall(self, key: str) -> Dict[str, str]: ...

    @abstractmethod
    def name(self) -> str: ...


class InMemoryHashRegistry(HashRegistry):
    def __init__(self) -> None:
        self._lock = RLock()
        self._hashes: Dict[str, Dict[str, str]] = {}

    def hset(self, key: str, field: str, value: str) -> None:
        with self._lock:
            self._hashes.setdefault(key, {})[field] = str(value)

    def hget(self, key: str, field: str) -> Optional[str]:
        with self._lock:
            return self._hashes.get(key, {}).get(field)

    def hdel(self, key: str, field: str) -> bool:
        with self._lock:
            bucket = self._hashes.get(key)
            if bucket is None or field not in bucket:
                return False
            del bucket[field]
            if not bucket:
                self._hashes.pop(key, None)
            return True

    def hgetall(self, key: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._hashes.get(key, {}))

    def name(self) -> str:
        return "memory"


def create_redis_client(
    *,
    url: str,
    connect_timeout_seconds: float,
    socket_timeout_seconds: float,
) -> Redis:
    return Redis.from_url(
        url=url,
        socket_connect_timeout=connect_timeout_seconds,
        socket_timeout=socket_timeout_seconds,
        decode_responses=True,
        encoding="utf-8",
    )


class RedisHashRegistry(HashRegistry):
    """Registry backed by redis-py; the socket timeout bounds every call."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        connect_timeout_seconds: float = 5.0,
        socket_timeout_seconds: float = 5.0,
    ) -> "RedisHashRegistry":
        return cls(
            create_redis_client(
                url=url,
                connect_timeout_seconds=connect_timeout_seconds,
                socket_timeout_seconds=socket_timeout_seconds,
            )
        )

    def hset(self, key: str, field: str, value: str) -> None:
        try:
            self._client.hset(key, field, value)
        except RedisError as exc:
            raise RegistryError("hset_failed", str(exc), self.name()) from exc

    def hget(self, key: str, field: str) -> Optional[str]:
        try:
            value = self._client.hget(key, field)
        except RedisError as exc:
            raise RegistryError("hget_failed", str(exc), self.name()) from exc
        if value is None:
            return None
        return str(value)

    def hdel(self, key: str, field: str) -> bool:
        try:
            return bool(self._client.hdel(key, field))
        except RedisError as exc:
            raise RegistryError("hdel_failed", str(exc), self.name()) from exc

    def hgetall(self, key: str) -> Dict[str, str]:
        try:
            raw = self._client.hgetall(key)
        except RedisError as exc:
            raise RegistryError("hgetall_failed", str(exc), self.name()) from exc
        return {str(field): str(value) for field, value in (raw or {}).items()}

    def name(self) -> str:
        return "redis"
