"""Redis connection factory shared by the hooks that use a broker.

Each hook owns one ``redis.asyncio.Redis`` client (with its own connection
pool) created at construction time and closed on shutdown.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import unquote, urlparse

import redis.asyncio as redis

from passgate.constants import REDIS_HEALTH_CHECK_INTERVAL_S, REDIS_MAX_CONNECTIONS
from passgate.errors import HookConfigError

_REDIS_SCHEMES: frozenset[str] = frozenset({"redis", "rediss"})


def _timeout(seconds: float) -> Optional[float]:
    """Zero or negative means no timeout."""
    return seconds if seconds and seconds > 0 else None


def create_redis_client(
    broker_url: str,
    connect_timeout: float = 0.0,
    read_timeout: float = 0.0,
    write_timeout: float = 0.0,
) -> redis.Redis:
    """Build a pooled async Redis client from a ``redis://[[user]:password@]host:port/db`` URL.

    A userinfo without a colon (``redis://s3cret@host/0``) is the password,
    not a username.

    redis-py has a single socket timeout for reads and writes; the larger of
    the two configured values is used.

    Raises:
        HookConfigError: scheme is not redis/rediss, or the db path is not an integer.
    """
    parsed = urlparse(broker_url)
    if parsed.scheme not in _REDIS_SCHEMES:
        raise HookConfigError(f"no redis scheme found in broker url: {parsed.scheme or '<none>'}")

    db_part = parsed.path.strip("/")
    if db_part and not db_part.isdigit():
        raise HookConfigError(f"redis database must be an integer, got {db_part!r}")

    # redis://pwd@host/0 carries the password alone in the userinfo;
    # from_url would read it as a username, and URL options win over kwargs.
    credentials: dict = {}
    if parsed.username and not parsed.password:
        credentials = {"password": unquote(parsed.username)}
        broker_url = parsed._replace(netloc=parsed.netloc.rpartition("@")[2]).geturl()

    socket_timeout = _timeout(max(read_timeout, write_timeout))
    return redis.from_url(
        broker_url,
        socket_connect_timeout=_timeout(connect_timeout),
        socket_timeout=socket_timeout,
        max_connections=REDIS_MAX_CONNECTIONS,
        health_check_interval=REDIS_HEALTH_CHECK_INTERVAL_S,
        decode_responses=True,
        **credentials,
    )
