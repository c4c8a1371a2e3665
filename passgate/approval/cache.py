"""Approved-passkey cache backed by a Redis set.

The cache is advisory: a hit approves, a miss or any Redis failure only
means "ask the authority". It can never reject a passkey on its own.

Entries are members of one set (default ``pt:passkeys``). The TTL is set on
the whole set with EXPIRE after every insert, so the set lives for
``ttl_seconds`` after the most recent approval. There is no delete path.
"""

from __future__ import annotations

from typing import Any

from redis.exceptions import RedisError

from passgate.utils.logger import get_logger, mask_passkey

logger = get_logger(__name__)


class PasskeyCache:
    """Membership checks and write-back for approved passkeys."""

    def __init__(self, client: Any, set_key: str, ttl_seconds: int = 0) -> None:
        self._client = client
        self.set_key = set_key
        self.ttl_seconds = ttl_seconds

    async def contains(self, passkey: str) -> bool:
        """Return True only when Redis confirms membership. Errors count as a miss."""
        try:
            found = await self._client.sismember(self.set_key, passkey)
        except RedisError as exc:
            logger.error(
                "failed to check passkey in redis",
                key=self.set_key,
                error=str(exc),
            )
            return False

        if found:
            logger.info("passkey found in redis", key=self.set_key, passkey=mask_passkey(passkey))
            return True
        logger.info("passkey not found in redis", key=self.set_key, passkey=mask_passkey(passkey))
        return False

    async def remember(self, passkey: str) -> None:
        """Add an approved passkey and refresh the set TTL.

        No-op unless ttl_seconds is positive. Failures are logged, never raised.
        """
        if self.ttl_seconds <= 0:
            return
        try:
            await self._client.sadd(self.set_key, passkey)
            await self._client.expire(self.set_key, self.ttl_seconds)
        except RedisError as exc:
            logger.warning(
                "failed to cache approved passkey",
                key=self.set_key,
                passkey=mask_passkey(passkey),
                error=str(exc),
            )

    async def close(self) -> None:
        await self._client.aclose()
