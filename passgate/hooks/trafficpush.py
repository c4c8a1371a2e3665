"""Upload/download deltas pushed to a Redis stream.

For every announce the hook keeps the client's last reported counters in a
hash, ``<last_key_prefix>:<passkey>:<infohash>:<peer_id>``, and appends the
difference to ``stream_key`` with XADD. Site-side consumers credit users
from the stream; entries carry no idempotency key, so consumers should
aggregate through a consumer group.

A counter lower than the stored one means the client restarted; the whole
reported value is then the delta. Announces with no transfer and no event
are not pushed.

Must run after the passkey approval hook. The free/discount flags of the
decrypted payload (``fd``, ``pd``) are copied into the stream entry.
"""

from __future__ import annotations

import asyncio
import ipaddress
import time
from typing import Any, Optional, Union

from redis.exceptions import RedisError

from passgate.approval.extractor import resolve_passkey
from passgate.approval.models import AnnounceRequest, RequestContext, ScrapeRequest
from passgate.config import TrafficPushConfig
from passgate.errors import HookConfigError
from passgate.store import create_redis_client
from passgate.utils.logger import get_logger, mask_passkey

logger = get_logger(__name__)

_SNAPSHOT_FIELDS = ("uploaded", "downloaded", "ts")


def transfer_delta(current: int, last: int) -> int:
    """Bytes transferred since the last announce; a counter reset yields ``current``."""
    return current - last if current >= last else current


def address_family(ip: str) -> str:
    try:
        return f"IPv{ipaddress.ip_address(ip).version}"
    except ValueError:
        return ""


def _stream_flag(value: Union[bool, str]) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _as_int(value: Optional[str]) -> int:
    try:
        return int(value) if value is not None else 0
    except ValueError:
        return 0


class TrafficPushHook:
    def __init__(self, cfg: TrafficPushConfig, client: Any) -> None:
        self.cfg = cfg
        self._client = client

    @classmethod
    def from_config(cls, cfg: TrafficPushConfig) -> "TrafficPushHook":
        """
        Raises:
            HookConfigError: no broker configured, or a bad broker URL.
        """
        if not cfg.redis_broker:
            raise HookConfigError("traffic push requires redis_broker")
        client = create_redis_client(
            cfg.redis_broker,
            connect_timeout=cfg.redis_connect_timeout,
            read_timeout=cfg.redis_read_timeout,
            write_timeout=cfg.redis_write_timeout,
        )
        logger.info("traffic push middleware enabled", **cfg.log_fields())
        return cls(cfg, client)

    def last_key(self, passkey: str, info_hash: str, peer_id: str) -> str:
        return f"{self.cfg.last_key_prefix}:{passkey}:{info_hash}:{peer_id}"

    async def handle_announce(
        self, ctx: RequestContext, request: AnnounceRequest
    ) -> RequestContext:
        passkey = resolve_passkey(ctx, request)
        if not passkey:
            return ctx

        key = self.last_key(passkey, request.info_hash, request.peer_id)
        try:
            last_up, last_down, last_ts = await self._client.hmget(key, list(_SNAPSHOT_FIELDS))
        except RedisError as exc:
            # Without the snapshot the delta would be the lifetime total.
            logger.error("traffic push: failed to read last counters", error=str(exc))
            return ctx

        du = transfer_delta(request.uploaded, _as_int(last_up))
        dd = transfer_delta(request.downloaded, _as_int(last_down))
        now = int(time.time())
        af = address_family(request.ip)

        try:
            await self._client.hset(
                key,
                mapping={
                    "uploaded": request.uploaded,
                    "downloaded": request.downloaded,
                    "port": request.port,
                    "ip": request.ip,
                    "af": af,
                    "ts": now,
                },
            )
        except RedisError as exc:
            logger.warning("traffic push: failed to store last counters", error=str(exc))

        event = request.event or "none"
        if du == 0 and dd == 0 and event == "none":
            return ctx

        previous_ts = _as_int(last_ts)
        fields: dict[str, Any] = {
            "passkey": passkey,
            "infohash": request.info_hash,
            "peer_id": request.peer_id,
            "port": request.port,
            "ip": request.ip,
            "af": af,
            "du": du,
            "dd": dd,
            "left": request.left,
            "event": event,
            "ts": now,
            "dt": now - previous_ts if previous_ts > 0 else 0,
        }
        if self.cfg.announce_interval > 0:
            fields["interval"] = int(self.cfg.announce_interval)
        if self.cfg.min_announce_interval > 0:
            fields["min_interval"] = int(self.cfg.min_announce_interval)
        payload = ctx.passkey_payload
        if payload is not None:
            if payload.aux_flag is not None:
                fields["fd"] = _stream_flag(payload.aux_flag)
            if payload.aux_percent is not None:
                fields["pd"] = payload.aux_percent

        await self._push(fields, passkey)
        return ctx

    async def _push(self, fields: dict[str, Any], passkey: str) -> None:
        for attempt in range(1, self.cfg.retry_count + 1):
            try:
                await self._client.xadd(self.cfg.stream_key, fields)
                return
            except RedisError as exc:
                if attempt == self.cfg.retry_count:
                    logger.error(
                        "traffic push: XADD failed",
                        passkey=mask_passkey(passkey),
                        attempts=attempt,
                        error=str(exc),
                    )
                    return
                await asyncio.sleep(self.cfg.retry_interval)

    async def handle_scrape(
        self, ctx: RequestContext, request: ScrapeRequest
    ) -> RequestContext:
        return ctx

    async def close(self) -> None:
        await self._client.aclose()
