"""Unit tests for passgate/approval/cache.py — advisory Redis set cache."""

from __future__ import annotations

import pytest

from passgate.approval.cache import PasskeyCache

pytestmark = pytest.mark.asyncio

SET_KEY = "pt:passkeys"


class TestContains:
    async def test_member_is_hit(self, fake_redis) -> None:
        fake_redis.sets[SET_KEY] = {"pk1"}
        assert await PasskeyCache(fake_redis, SET_KEY).contains("pk1") is True

    async def test_non_member_is_miss(self, fake_redis) -> None:
        fake_redis.sets[SET_KEY] = {"pk1"}
        assert await PasskeyCache(fake_redis, SET_KEY).contains("pk2") is False

    async def test_redis_error_is_miss(self, fake_redis) -> None:
        fake_redis.sets[SET_KEY] = {"pk1"}
        fake_redis.fail = True
        assert await PasskeyCache(fake_redis, SET_KEY).contains("pk1") is False

    async def test_uses_configured_set_key(self, fake_redis) -> None:
        fake_redis.sets["custom:set"] = {"pk1"}
        assert await PasskeyCache(fake_redis, "custom:set").contains("pk1") is True
        assert await PasskeyCache(fake_redis, SET_KEY).contains("pk1") is False


class TestRemember:
    async def test_adds_member_and_refreshes_ttl(self, fake_redis) -> None:
        cache = PasskeyCache(fake_redis, SET_KEY, ttl_seconds=300)
        await cache.remember("pk1")
        assert fake_redis.sets[SET_KEY] == {"pk1"}
        assert fake_redis.ttls[SET_KEY] == 300
        assert fake_redis.calls == ["sadd", "expire"]

    @pytest.mark.parametrize("ttl", [0, -5])
    async def test_no_write_without_positive_ttl(self, fake_redis, ttl: int) -> None:
        await PasskeyCache(fake_redis, SET_KEY, ttl_seconds=ttl).remember("pk1")
        assert fake_redis.calls == []
        assert SET_KEY not in fake_redis.sets

    async def test_redis_error_is_swallowed(self, fake_redis) -> None:
        fake_redis.fail = True
        await PasskeyCache(fake_redis, SET_KEY, ttl_seconds=300).remember("pk1")
        assert fake_redis.calls == ["sadd"]

    async def test_close(self, fake_redis) -> None:
        await PasskeyCache(fake_redis, SET_KEY).close()
        assert fake_redis.closed is True
