"""Root test configuration for Passgate.

Isolates every test from the developer's environment (no config file or
encryption key picked up from env) and provides in-memory stand-ins for the
Redis client and the authority endpoint.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

TEST_KEY = "01234567890123456789012345678901"  # 32 bytes


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Keep real config files and env overrides out of the test run."""
    monkeypatch.delenv("PASSGATE_CONFIG", raising=False)
    monkeypatch.delenv("PASSGATE_PORT", raising=False)
    monkeypatch.delenv("PASSGATE_ENCRYPTION_KEY", raising=False)
    monkeypatch.setattr("passgate.config.DEFAULT_CONFIG_PATHS", [str(tmp_path / "absent.yaml")])


class FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._ops: list[tuple[str, tuple]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    def sadd(self, key: str, *members: str) -> "FakePipeline":
        self._ops.append(("sadd", (key, *members)))
        return self

    def expire(self, key: str, seconds: int) -> "FakePipeline":
        self._ops.append(("expire", (key, seconds)))
        return self

    async def execute(self) -> list[Any]:
        results = []
        for name, args in self._ops:
            results.append(await getattr(self._redis, name)(*args))
        self._ops.clear()
        return results


class FakeRedis:
    """In-memory async subset of redis.asyncio.Redis: sets, hashes, streams.

    ``fail = True`` makes every command raise a redis ConnectionError;
    ``fail_times["xadd"] = 2`` fails only the next two XADD calls.
    """

    def __init__(self) -> None:
        self.sets: dict[str, set[str]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.streams: dict[str, list[dict[str, Any]]] = {}
        self.ttls: dict[str, int] = {}
        self.calls: list[str] = []
        self.fail = False
        self.fail_times: dict[str, int] = {}
        self.closed = False

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise RedisConnectionError("connection refused")
        if self.fail_times.get(name, 0) > 0:
            self.fail_times[name] -= 1
            raise RedisConnectionError("connection reset")

    async def sismember(self, key: str, member: str) -> bool:
        self._record("sismember")
        return member in self.sets.get(key, set())

    async def sadd(self, key: str, *members: str) -> int:
        self._record("sadd")
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    async def srem(self, key: str, *members: str) -> int:
        self._record("srem")
        bucket = self.sets.get(key, set())
        removed = len(bucket & set(members))
        bucket.difference_update(members)
        return removed

    async def smembers(self, key: str) -> set[str]:
        self._record("smembers")
        return set(self.sets.get(key, set()))

    async def expire(self, key: str, seconds: int) -> bool:
        self._record("expire")
        self.ttls[key] = seconds
        return key in self.sets

    async def hmget(self, key: str, keys: Any, *args: str) -> list[Optional[str]]:
        self._record("hmget")
        names = list(keys) if isinstance(keys, (list, tuple)) else [keys]
        names.extend(args)
        bucket = self.hashes.get(key, {})
        return [bucket.get(name) for name in names]

    async def hset(self, key: str, mapping: Optional[dict[str, Any]] = None) -> int:
        self._record("hset")
        bucket = self.hashes.setdefault(key, {})
        added = len(set(mapping or {}) - set(bucket))
        # decode_responses=True: values come back as strings
        bucket.update({name: str(value) for name, value in (mapping or {}).items()})
        return added

    async def xadd(self, name: str, fields: dict[str, Any], **kwargs: Any) -> str:
        self._record("xadd")
        entries = self.streams.setdefault(name, [])
        entries.append(dict(fields))
        return f"0-{len(entries)}"

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


class MockAuthority:
    """Validator endpoint served through httpx.MockTransport.

    ``valid`` is the set of passkeys answered with ``data.valid = true``.
    """

    def __init__(
        self,
        valid: Optional[set[str]] = None,
        status_code: int = 200,
        raise_exc: Optional[Exception] = None,
        body: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.valid = valid or set()
        self.status_code = status_code
        self.raise_exc = raise_exc
        self.body = body
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_exc is not None:
            raise self.raise_exc
        passkey = request.url.params.get("passkey", "")
        if self.body is not None:
            content = self.body(passkey)
        else:
            content = {
                "code": 1000,
                "message": "Success",
                "data": {"valid": passkey in self.valid},
            }
        raw = content if isinstance(content, (bytes, str)) else json.dumps(content)
        return httpx.Response(self.status_code, content=raw)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def call_count(self) -> int:
        return len(self.requests)


@pytest.fixture
def mock_authority() -> MockAuthority:
    return MockAuthority(valid={"valid_passkey"})


@pytest.fixture
def authority_factory() -> type[MockAuthority]:
    """The MockAuthority class, for tests that need non-default behaviour."""
    return MockAuthority


@pytest.fixture
def encryption_key() -> str:
    return TEST_KEY
