"""Exception types shared by every announce hook.

``ClientError`` is the only exception the tracker surface turns into a
client-visible rejection. Everything else raised from a hook at request
time is a bug.
"""

from __future__ import annotations


class ClientError(Exception):
    """Rejection of an announce/scrape, reported back to the tracker client.

    HTTP mapping: 403 with body ``{"failure reason": <reason>}``.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class MalformedCredentialError(ValueError):
    """Raised when a credential cannot be base64-decoded, authenticated or parsed."""


class HookConfigError(ValueError):
    """Raised at startup when a hook's options are invalid.

    Examples: an encryption key that is not 32 bytes, a broker URL that is
    not ``redis://``, or an unknown hook name in the chain.
    """
