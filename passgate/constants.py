"""Shared constants for Passgate.

Defaults for hook options live here so config parsing, hook construction
and tests agree on them.
"""

# ─── Passkey approval ─────────────────────────────────────────────────────────

# Redis set holding passkeys the authority has already approved.
DEFAULT_SET_KEY: str = "pt:passkeys"

# Total timeout for one authority GET (seconds).
DEFAULT_HTTP_TIMEOUT_S: float = 5.0

# Header carrying the static authority API key.
DEFAULT_API_KEY_HEADER: str = "X-API-Key"

# AES-256: credential envelopes are sealed with exactly this many key bytes.
ENCRYPTION_KEY_BYTES: int = 32

# AES-GCM standard nonce length, prefixed to every sealed envelope.
GCM_NONCE_BYTES: int = 12

# Query / route parameter names, in extraction priority order.
CREDENTIAL_PARAM: str = "credential"
LEGACY_PASSKEY_PARAM: str = "passkey"

# ─── Peer limit ───────────────────────────────────────────────────────────────

DEFAULT_LIMIT_KEY_PREFIX: str = "tracker:limit"

# Seconds a peer stays registered against (passkey, infohash) without re-announcing.
DEFAULT_PEER_LIFETIME_S: float = 1800.0

# ─── Traffic push ──────────────────────────────────────────────────────────────

# Redis stream receiving one entry per announce with non-zero transfer.
DEFAULT_STREAM_KEY: str = "tracker:traffic"

# Hash prefix for the last counters seen per (passkey, infohash, peer id).
DEFAULT_LAST_KEY_PREFIX: str = "tracker:last"

DEFAULT_PUSH_RETRY_COUNT: int = 3
DEFAULT_PUSH_RETRY_INTERVAL_S: float = 1.0

# ─── Redis connection ─────────────────────────────────────────────────────────

# Upper bound on pooled connections per hook.
REDIS_MAX_CONNECTIONS: int = 50

# Idle connections are health-checked after this many seconds.
REDIS_HEALTH_CHECK_INTERVAL_S: int = 10
