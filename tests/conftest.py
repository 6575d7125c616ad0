"""Shared fixtures: an in-memory stand-in for the redis.asyncio client."""

from types import SimpleNamespace
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from dockercache.store import Cache

SERVER_TIME = 1_700_000_000


class FakeRedis:
    """In-memory model of the redis.asyncio commands the Cache uses.

    Transactions are all-or-nothing: if any queued command is set to fail,
    EXEC raises and none of them is applied.
    """

    COMMANDS = frozenset({
        "delete", "get", "set", "expire",
        "hset", "hget", "hgetall", "hincrby",
        "sadd", "srem", "smembers",
        "publish",
    })

    def __init__(self, server_time: int | None = SERVER_TIME):
        self.strings: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.sets: dict[str, set[str]] = {}
        self.expiries: dict[str, int] = {}
        self.published: list[tuple[str, str]] = []
        self.server_time = server_time
        self.failing: set[str] = set()
        self.executed: list[str] = []
        self.transactions = 0
        self.closed = False
        self.connection_pool = SimpleNamespace(
            connection_kwargs={"host": "localhost", "port": 6379, "db": 0}
        )

    # -- command implementations ------------------------------------------

    def _exists(self, key: str) -> bool:
        return key in self.strings or key in self.hashes or key in self.sets

    def _delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._exists(key):
                removed += 1
            self.strings.pop(key, None)
            self.hashes.pop(key, None)
            self.sets.pop(key, None)
            self.expiries.pop(key, None)
        return removed

    def _get(self, key: str) -> str | None:
        return self.strings.get(key)

    def _set(self, key: str, value: Any) -> bool:
        self.strings[key] = str(value)
        return True

    def _expire(self, key: str, seconds: int) -> bool:
        if not self._exists(key):
            return False
        self.expiries[key] = int(seconds)
        return True

    def _hset(self, name: str, key: str | None = None, value: Any = None,
              mapping: dict | None = None) -> int:
        items = dict(mapping or {})
        if key is not None:
            items[key] = value
        record = self.hashes.setdefault(name, {})
        added = sum(1 for k in items if k not in record)
        record.update({k: str(v) for k, v in items.items()})
        return added

    def _hget(self, name: str, key: str) -> str | None:
        return self.hashes.get(name, {}).get(key)

    def _hgetall(self, name: str) -> dict[str, str]:
        return dict(self.hashes.get(name, {}))

    def _hincrby(self, name: str, key: str, amount: int = 1) -> int:
        record = self.hashes.setdefault(name, {})
        try:
            value = int(record.get(key, "0")) + amount
        except ValueError:
            raise ResponseError("hash value is not an integer")
        record[key] = str(value)
        return value

    def _sadd(self, name: str, *values: str) -> int:
        members = self.sets.setdefault(name, set())
        added = len(set(values) - members)
        members.update(values)
        return added

    def _srem(self, name: str, *values: str) -> int:
        members = self.sets.get(name, set())
        removed = len(members & set(values))
        members.difference_update(values)
        if not members:
            self.sets.pop(name, None)
            self.expiries.pop(name, None)
        return removed

    def _smembers(self, name: str) -> set[str]:
        return set(self.sets.get(name, set()))

    def _publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 0

    # -- client surface ----------------------------------------------------

    def _check(self, command: str) -> None:
        if command in self.failing:
            raise RedisConnectionError(f"Connection lost during {command}")

    def _run(self, command: str, *args: Any, **kwargs: Any) -> Any:
        self._check(command)
        self.executed.append(command)
        return getattr(self, f"_{command}")(*args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        if name in FakeRedis.COMMANDS:
            async def command(*args: Any, **kwargs: Any) -> Any:
                return self._run(name, *args, **kwargs)
            return command
        raise AttributeError(name)

    async def time(self) -> tuple[int, int]:
        self._check("time")
        if self.server_time is None:
            raise ResponseError("unknown command 'TIME'")
        return (self.server_time, 0)

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def aclose(self) -> None:
        self.closed = True

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    @property
    def messages(self) -> list[str]:
        return [message for _, message in self.published]


class FakePipeline:
    """MULTI/EXEC batch for FakeRedis."""

    def __init__(self, client: FakeRedis):
        self._client = client
        self._queue: list[tuple[str, tuple, dict]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._queue = []

    def __getattr__(self, name: str) -> Any:
        if name in FakeRedis.COMMANDS:
            def queue(*args: Any, **kwargs: Any) -> "FakePipeline":
                self._queue.append((name, args, kwargs))
                return self
            return queue
        raise AttributeError(name)

    async def execute(self) -> list[Any]:
        self._client._check("exec")
        for name, _, _ in self._queue:
            self._client._check(name)
        self._client.transactions += 1
        results = [self._client._run(name, *args, **kwargs) for name, args, kwargs in self._queue]
        self._queue = []
        return results


def make_container(container_id: str, name: str = "web", running: bool = True) -> dict[str, Any]:
    """A trimmed Docker inspect payload."""
    return {
        "Id": container_id,
        "Created": "2026-10-01T12:00:00.000000000Z",
        "Path": "/docker-entrypoint.sh",
        "Args": ["nginx", "-g", "daemon off;"],
        "State": {
            "Status": "running" if running else "exited",
            "Running": running,
            "Paused": False,
            "Pid": 4242 if running else 0,
            "ExitCode": 0,
            "StartedAt": "2026-10-01T12:00:01.000000000Z",
        },
        "Image": "sha256:abcdef",
        "Name": f"/{name}",
        "RestartCount": 0,
        "Driver": "overlay2",
        "HostConfig": {
            "NetworkMode": "bridge",
            "RestartPolicy": {"Name": "always", "MaximumRetryCount": 0},
            "Privileged": False,
            "Memory": 0,
        },
        "Config": {
            "Hostname": container_id[:12],
            "Env": ["PATH=/usr/bin", "NGINX_VERSION=1.25"],
            "Image": "nginx:latest",
            "Labels": {"com.example.team": "edge"},
            "Tty": False,
        },
        "NetworkSettings": {
            "IPAddress": "172.17.0.2",
            "IPPrefixLen": 16,
            "Ports": {"80/tcp": [{"HostIp": "0.0.0.0", "HostPort": "8080"}]},
        },
        "Mounts": [],
        "SizeRw": 1024,  # not part of the schema
    }


@pytest.fixture
def fake_redis():
    """An empty in-memory store."""
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    """A Cache for host h1 with a 10s update interval."""
    return Cache(fake_redis, "h1", ttl=15, update_interval=10)
