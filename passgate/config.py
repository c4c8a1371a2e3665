"""Config loading for Passgate.

Reads ``.passgate/config.yaml`` (or ``~/.passgate/config.yaml``).
Raises SystemExit on parse errors or a missing/unsupported ``version`` field.
If no config file is found, returns defaults: an empty hook chain.

Config search order:
  1. ``config_path`` argument (explicit override, used by tests)
  2. PASSGATE_CONFIG environment variable
  3. ``.passgate/config.yaml`` (working directory)
  4. ``~/.passgate/config.yaml`` (home directory)

Example::

    version: 1
    server:
      host: 127.0.0.1
      port: 6969
    hooks:
      - name: passkey approval
        options:
          redis_broker: redis://localhost:6379/0
          http_url: https://site.example/api/passkey/verify
          http_api_key: s3cret
          http_timeout: 5s
          cache_ttl_seconds: 300
          encryption_key: 01234567890123456789012345678901
      - name: peer limit
        options:
          redis_broker: redis://localhost:6379/0
          peer_lifetime: 30m
      - name: traffic push
        options:
          redis_broker: redis://s3cret@localhost:6379/0
          retry_interval: 500ms

Durations accept a number of seconds or a unit-suffixed string (``ns``,
``us``, ``ms``, ``s``, ``m``, ``h``; combined as in ``1m30s``).

Environment variable overrides:
  PASSGATE_PORT           — overrides server.port
  PASSGATE_ENCRYPTION_KEY — overrides encryption_key of every passkey approval hook
"""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from passgate.constants import (
    DEFAULT_API_KEY_HEADER,
    DEFAULT_HTTP_TIMEOUT_S,
    DEFAULT_LAST_KEY_PREFIX,
    DEFAULT_LIMIT_KEY_PREFIX,
    DEFAULT_PEER_LIFETIME_S,
    DEFAULT_PUSH_RETRY_COUNT,
    DEFAULT_PUSH_RETRY_INTERVAL_S,
    DEFAULT_SET_KEY,
    DEFAULT_STREAM_KEY,
)
from passgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".passgate/config.yaml",
    os.path.expanduser("~/.passgate/config.yaml"),
]

PASSKEY_APPROVAL_HOOK = "passkey approval"

PEER_LIMIT_HOOK = "peer limit"

TRAFFIC_PUSH_HOOK = "traffic push"

_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "\u00b5s": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|\u00b5s|ms|s|m|h)")


def _parse_duration(text: str) -> float:
    """Parse ``"5s"``, ``"500ms"``, ``"1m30s"`` into seconds. ``"0"`` needs no unit."""
    text = text.strip()
    if text == "0":
        return 0.0
    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {text!r}")
    return total


def _seconds(raw: dict, name: str, default: float = 0.0) -> float:
    """Read a duration: a number of seconds or a unit-suffixed string."""
    value = raw.get(name, default)
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return _parse_duration(value)
        except ValueError as exc:
            raise ValueError(f"{name}: {exc}") from exc
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a duration, got {value!r}")
    return float(value)


def _flag(raw: dict, name: str, default: bool = False) -> bool:
    """Read a YAML boolean. Quoted strings such as ``"false"`` are rejected."""
    value = raw.get(name, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be true or false, got {value!r}")
    return value


def _count(raw: dict, name: str, default: int = 0) -> int:
    value = raw.get(name, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


# ─── Hook option dataclasses ──────────────────────────────────────────────────


@dataclass
class PasskeyApprovalConfig:
    """Options for the passkey approval hook.

    Every collaborator is optional: without ``redis_broker`` there is no
    cache, without ``http_url`` there is no authority, and without
    ``encryption_key`` credentials are plaintext passkeys.
    """

    redis_broker: str = ""
    set_key: str = DEFAULT_SET_KEY
    http_url: str = ""
    http_timeout: float = DEFAULT_HTTP_TIMEOUT_S
    http_api_key_header: str = DEFAULT_API_KEY_HEADER
    http_api_key: str = ""
    cache_ttl_seconds: int = 0
    redis_read_timeout: float = 0.0
    redis_write_timeout: float = 0.0
    redis_connect_timeout: float = 0.0
    encryption_key: str = ""
    # Deployments with neither cache nor authority: approve well-formed credentials?
    allow_when_unverifiable: bool = False

    def __post_init__(self) -> None:
        if not self.set_key:
            self.set_key = DEFAULT_SET_KEY
        if self.http_timeout <= 0:
            self.http_timeout = DEFAULT_HTTP_TIMEOUT_S
        if not self.http_api_key_header:
            self.http_api_key_header = DEFAULT_API_KEY_HEADER

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "PasskeyApprovalConfig":
        raw = raw or {}
        return cls(
            redis_broker=raw.get("redis_broker") or "",
            set_key=raw.get("set_key") or DEFAULT_SET_KEY,
            http_url=raw.get("http_url") or "",
            http_timeout=_seconds(raw, "http_timeout", DEFAULT_HTTP_TIMEOUT_S),
            http_api_key_header=raw.get("http_api_key_header") or DEFAULT_API_KEY_HEADER,
            http_api_key=raw.get("http_api_key") or "",
            cache_ttl_seconds=_count(raw, "cache_ttl_seconds"),
            redis_read_timeout=_seconds(raw, "redis_read_timeout"),
            redis_write_timeout=_seconds(raw, "redis_write_timeout"),
            redis_connect_timeout=_seconds(raw, "redis_connect_timeout"),
            encryption_key=str(raw.get("encryption_key") or ""),
            allow_when_unverifiable=_flag(raw, "allow_when_unverifiable"),
        )

    def log_fields(self) -> dict[str, Any]:
        """Loggable view of the options. Secrets are reported as booleans."""
        return {
            "name": PASSKEY_APPROVAL_HOOK,
            "redis_broker": _redact_broker(self.redis_broker),
            "set_key": self.set_key,
            "http_url": self.http_url,
            "http_timeout": self.http_timeout,
            "http_api_key_header": self.http_api_key_header,
            "http_api_key": bool(self.http_api_key),
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "encryption_key": bool(self.encryption_key),
            "allow_when_unverifiable": self.allow_when_unverifiable,
        }


@dataclass
class PeerLimitConfig:
    """Options for the one-peer-per-(passkey, torrent) limit hook."""

    redis_broker: str = ""
    limit_key_prefix: str = DEFAULT_LIMIT_KEY_PREFIX
    peer_lifetime: float = DEFAULT_PEER_LIFETIME_S
    redis_read_timeout: float = 0.0
    redis_write_timeout: float = 0.0
    redis_connect_timeout: float = 0.0

    def __post_init__(self) -> None:
        if not self.limit_key_prefix:
            self.limit_key_prefix = DEFAULT_LIMIT_KEY_PREFIX
        if self.peer_lifetime <= 0:
            self.peer_lifetime = DEFAULT_PEER_LIFETIME_S

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "PeerLimitConfig":
        raw = raw or {}
        return cls(
            redis_broker=raw.get("redis_broker") or "",
            limit_key_prefix=raw.get("limit_key_prefix") or DEFAULT_LIMIT_KEY_PREFIX,
            peer_lifetime=_seconds(raw, "peer_lifetime", DEFAULT_PEER_LIFETIME_S),
            redis_read_timeout=_seconds(raw, "redis_read_timeout"),
            redis_write_timeout=_seconds(raw, "redis_write_timeout"),
            redis_connect_timeout=_seconds(raw, "redis_connect_timeout"),
        )

    def log_fields(self) -> dict[str, Any]:
        return {
            "name": PEER_LIMIT_HOOK,
            "redis_broker": _redact_broker(self.redis_broker),
            "limit_key_prefix": self.limit_key_prefix,
            "peer_lifetime": self.peer_lifetime,
        }


@dataclass
class TrafficPushConfig:
    """Options for the transfer-delta stream hook.

    ``announce_interval`` and ``min_announce_interval`` are the tracker's own
    announce intervals, copied into every stream entry for consumers that
    rate transfer per interval. Zero omits them.
    """

    redis_broker: str = ""
    stream_key: str = DEFAULT_STREAM_KEY
    last_key_prefix: str = DEFAULT_LAST_KEY_PREFIX
    retry_count: int = DEFAULT_PUSH_RETRY_COUNT
    retry_interval: float = DEFAULT_PUSH_RETRY_INTERVAL_S
    announce_interval: float = 0.0
    min_announce_interval: float = 0.0
    redis_read_timeout: float = 0.0
    redis_write_timeout: float = 0.0
    redis_connect_timeout: float = 0.0

    def __post_init__(self) -> None:
        if not self.stream_key:
            self.stream_key = DEFAULT_STREAM_KEY
        if not self.last_key_prefix:
            self.last_key_prefix = DEFAULT_LAST_KEY_PREFIX
        if self.retry_count <= 0:
            self.retry_count = DEFAULT_PUSH_RETRY_COUNT
        if self.retry_interval <= 0:
            self.retry_interval = DEFAULT_PUSH_RETRY_INTERVAL_S

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "TrafficPushConfig":
        raw = raw or {}
        return cls(
            redis_broker=raw.get("redis_broker") or "",
            stream_key=raw.get("stream_key") or DEFAULT_STREAM_KEY,
            last_key_prefix=raw.get("last_key_prefix") or DEFAULT_LAST_KEY_PREFIX,
            retry_count=_count(raw, "retry_count", DEFAULT_PUSH_RETRY_COUNT),
            retry_interval=_seconds(raw, "retry_interval", DEFAULT_PUSH_RETRY_INTERVAL_S),
            announce_interval=_seconds(raw, "announce_interval"),
            min_announce_interval=_seconds(raw, "min_announce_interval"),
            redis_read_timeout=_seconds(raw, "redis_read_timeout"),
            redis_write_timeout=_seconds(raw, "redis_write_timeout"),
            redis_connect_timeout=_seconds(raw, "redis_connect_timeout"),
        )

    def log_fields(self) -> dict[str, Any]:
        return {
            "name": TRAFFIC_PUSH_HOOK,
            "redis_broker": _redact_broker(self.redis_broker),
            "stream_key": self.stream_key,
            "last_key_prefix": self.last_key_prefix,
            "retry_count": self.retry_count,
            "retry_interval": self.retry_interval,
        }


def _redact_broker(url: str) -> str:
    """Drop the userinfo (password) portion of a broker URL."""
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rsplit('@', 1)[-1]}"


# ─── Top-level dataclasses ────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 6969


@dataclass
class HookSpec:
    """One entry of the announce hook chain: a registered name plus its raw options."""

    name: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class Config:
    """Root configuration object populated from .passgate/config.yaml."""

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    hooks: list[HookSpec] = field(default_factory=list)
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Raises:
            SystemExit(1): ``hooks`` is not a list of ``{name, options}`` mappings.
        """
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 6969),
        )

        hooks_raw = raw.get("hooks") or []
        if not isinstance(hooks_raw, list):
            _fail(f"CONFIG ERROR: 'hooks' must be a list, got {type(hooks_raw).__name__}.")
        hooks: list[HookSpec] = []
        for index, entry in enumerate(hooks_raw):
            if not isinstance(entry, dict) or not entry.get("name"):
                _fail(f"CONFIG ERROR: hooks[{index}] must be a mapping with a 'name' field.")
            options = entry.get("options") or {}
            if not isinstance(options, dict):
                _fail(f"CONFIG ERROR: hooks[{index}].options must be a mapping.")
            hooks.append(HookSpec(name=str(entry["name"]), options=dict(options)))

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            hooks=hooks,
            path=path,
        )


def _fail(msg: str) -> None:
    print(msg, file=sys.stderr)
    raise SystemExit(1)


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate Passgate configuration.

    If no file is found at any search path, returns ``Config.defaults()``
    (not an error). Env overrides are applied in both cases.

    Raises:
        SystemExit(1): YAML parse error, unreadable file, non-mapping document,
                       missing or unsupported ``version``, malformed ``hooks``,
                       or a non-integer ``PASSGATE_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("PASSGATE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found, using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "Passgate refuses to start with an invalid config."
        )
    except OSError as exc:
        _fail(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _fail(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )

    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning("Passgate is configured to bind on 0.0.0.0 (all interfaces)")

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        hooks=[spec.name for spec in config.hooks],
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    PASSGATE_PORT           — config.server.port (SystemExit(1) if not an integer)
    PASSGATE_ENCRYPTION_KEY — encryption_key of each passkey approval hook
    """
    env_port = os.environ.get("PASSGATE_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _fail(
                "CONFIG ERROR: PASSGATE_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )

    env_key = os.environ.get("PASSGATE_ENCRYPTION_KEY")
    if env_key:
        for spec in config.hooks:
            if spec.name == PASSKEY_APPROVAL_HOOK:
                spec.options["encryption_key"] = env_key
