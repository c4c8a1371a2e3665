"""One peer per (passkey, torrent).

Each (passkey, infohash) pair owns a Redis set of peer ids,
``<limit_key_prefix>:<passkey>:<infohash>``, that expires ``peer_lifetime``
seconds after the last announce. A second peer id announcing while the
first is still registered is rejected; a ``stopped`` event frees the slot.

Must run after the passkey approval hook so it can use the decrypted
passkey. Without a broker, or without any passkey, the hook allows
everything. A Redis read failure also allows the announce.
"""

from __future__ import annotations

from typing import Any, Optional

from redis.exceptions import RedisError

from passgate.approval.extractor import resolve_passkey
from passgate.approval.models import AnnounceRequest, RequestContext, ScrapeRequest
from passgate.config import PeerLimitConfig
from passgate.errors import ClientError
from passgate.store import create_redis_client
from passgate.utils.logger import get_logger, mask_passkey

logger = get_logger(__name__)

CONNECTION_LIMIT_REASON = "connection limit reached for this torrent"

_EVENT_STOPPED = "stopped"


class PeerLimitHook:
    def __init__(self, cfg: PeerLimitConfig, client: Optional[Any] = None) -> None:
        self.cfg = cfg
        self._client = client

    @classmethod
    def from_config(cls, cfg: PeerLimitConfig) -> "PeerLimitHook":
        client = None
        if cfg.redis_broker:
            client = create_redis_client(
                cfg.redis_broker,
                connect_timeout=cfg.redis_connect_timeout,
                read_timeout=cfg.redis_read_timeout,
                write_timeout=cfg.redis_write_timeout,
            )
        logger.info("peer limit middleware enabled", **cfg.log_fields())
        return cls(cfg, client)

    def limit_key(self, passkey: str, info_hash: str) -> str:
        return f"{self.cfg.limit_key_prefix}:{passkey}:{info_hash}"

    async def handle_announce(
        self, ctx: RequestContext, request: AnnounceRequest
    ) -> RequestContext:
        if self._client is None:
            return ctx

        passkey = resolve_passkey(ctx, request)
        if not passkey:
            return ctx

        key = self.limit_key(passkey, request.info_hash)
        peer_id = request.peer_id

        if request.event == _EVENT_STOPPED:
            try:
                await self._client.srem(key, peer_id)
            except RedisError as exc:
                logger.error("peer limit: failed to remove peer", error=str(exc))
            return ctx

        try:
            members = await self._client.smembers(key)
        except RedisError as exc:
            logger.error("peer limit: failed to fetch members", error=str(exc))
            return ctx

        for member in members:
            if member != peer_id:
                logger.info(
                    "peer limit: concurrent connection rejected",
                    passkey=mask_passkey(passkey),
                    info_hash=request.info_hash,
                    existing_peer=member,
                    new_peer=peer_id,
                )
                raise ClientError(CONNECTION_LIMIT_REASON)

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.sadd(key, peer_id)
                pipe.expire(key, int(self.cfg.peer_lifetime))
                await pipe.execute()
        except RedisError as exc:
            logger.error("peer limit: failed to update set", error=str(exc))

        return ctx

    async def handle_scrape(
        self, ctx: RequestContext, request: ScrapeRequest
    ) -> RequestContext:
        return ctx

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
