"""Request id generation.

Every announce/scrape gets a ULID bound to the logging context and echoed
in the ``X-Passgate-Request-ID`` response header.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Return a new 26-character Crockford Base32 ULID string."""
    return str(ULID())
