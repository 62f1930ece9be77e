import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from decision_safety.internal_core.registry import InMemoryHashRegistry, RedisHashRegistry, RegistryError


class _BrokenRedis:
    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

        return _fail


class _DictRedis:
    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}

    def hset(self, key, field, value):
        self.hashes.setdefault(key, {})[field] = value
        return 1

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hdel(self, key, field):
        return 1 if self.hashes.get(key, {}).pop(field, None) is not None else 0

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))


def test_in_memory_registry_hash_operations() -> None:
    registry = InMemoryHashRegistry()
    registry.hset("k", "a", "1")
    registry.hset("k", "b", "2")
    assert registry.hget("k", "a") == "1"
    assert registry.hgetall("k") == {"a": "1", "b": "2"}
    assert registry.hdel("k", "a") is True
    assert registry.hdel("k", "a") is False
    assert registry.hget("missing", "a") is None
    assert registry.hgetall("missing") == {}
    assert registry.name() == "memory"


def test_redis_registry_delegates_to_client() -> None:
    registry = RedisHashRegistry(_DictRedis())
    registry.hset("k", "a", "payload")
    assert registry.hget("k", "a") == "payload"
    assert registry.hgetall("k") == {"a": "payload"}
    assert registry.hdel("k", "a") is True
    assert registry.hdel("k", "a") is False
    assert registry.hget("k", "a") is None


@pytest.mark.parametrize(
    "operation, args, code",
    [
        ("hset", ("k", "a", "v"), "hset_failed"),
        ("hget", ("k", "a"), "hget_failed"),
        ("hdel", ("k", "a"), "hdel_failed"),
        ("hgetall", ("k",), "hgetall_failed"),
    ],
)
def test_redis_errors_become_registry_errors(operation: str, args: tuple, code: str) -> None:
    registry = RedisHashRegistry(_BrokenRedis())
    with pytest.raises(RegistryError) as exc_info:
        getattr(registry, operation)(*args)
    assert exc_info.value.code == code
    assert exc_info.value.backend == "redis"
    assert isinstance(exc_info.value.__cause__, RedisConnectionError)


def test_from_url_builds_lazy_client() -> None:
    # redis-py only connects on the first command.
    registry = RedisHashRegistry.from_url(
        "redis://localhost:6399/0",
        connect_timeout_seconds=0.1,
        socket_timeout_seconds=0.1,
    )
    assert registry.name() == "redis"
