"""Client for the authoritative passkey validator.

Request:
    GET <http_url>?passkey=<passkey>      (``&`` if http_url already has a query)
    <http_api_key_header>: <http_api_key> (only when an API key is configured)

Response body:
    {"code": 1000, "message": "Success", "data": {"valid": true}}

Only the status class and ``data.valid`` decide the result; ``code`` and
``message`` are logged. A passkey is approved only by a 2xx response with
``data.valid`` exactly ``true``.

Every failure is "no verdict", never an exception:
  - request construction / network / timeout error → logged at ERROR
  - non-2xx status                                → logged at WARNING
No retries: the next announce retries naturally.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from passgate.approval.cache import PasskeyCache
from passgate.constants import DEFAULT_API_KEY_HEADER
from passgate.utils.logger import get_logger, mask_passkey

logger = get_logger(__name__)


@dataclass(frozen=True)
class VerificationVerdict:
    """Parsed validator response. Missing or mistyped fields read as invalid."""

    code: int = 0
    message: str = ""
    valid: bool = False

    @classmethod
    def from_body(cls, body: Any) -> "VerificationVerdict":
        if not isinstance(body, dict):
            return cls()
        data = body.get("data")
        valid = isinstance(data, dict) and data.get("valid") is True
        code = body.get("code")
        message = body.get("message")
        return cls(
            code=code if isinstance(code, int) and not isinstance(code, bool) else 0,
            message=message if isinstance(message, str) else "",
            valid=valid,
        )


def build_validation_url(base_url: str, passkey: str) -> str:
    """Append ``passkey=<value>`` to base_url, keeping any existing query string."""
    query = urlencode({"passkey": passkey})
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{query}"


class AuthorityClient:
    """Asks the validator whether a passkey is valid, caching approvals."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        api_key: str = "",
        api_key_header: str = DEFAULT_API_KEY_HEADER,
        cache: Optional[PasskeyCache] = None,
    ) -> None:
        self._http = http_client
        self.url = url
        self._api_key = api_key
        self.api_key_header = api_key_header
        self._cache = cache

    async def approve(self, passkey: str) -> bool:
        """Return True if the validator approves passkey.

        On approval the passkey is written back to the cache (when one with a
        positive TTL is configured). False covers both an explicit
        ``valid: false`` and every "no verdict" failure.
        """
        verdict = await self.fetch_verdict(passkey)
        if verdict is None or not verdict.valid:
            return False
        if self._cache is not None:
            await self._cache.remember(passkey)
        return True

    async def fetch_verdict(self, passkey: str) -> Optional[VerificationVerdict]:
        """Perform the GET. Returns None when no verdict could be obtained."""
        url = build_validation_url(self.url, passkey)
        headers = {self.api_key_header: self._api_key} if self._api_key else {}

        logger.info("checking passkey with http api", passkey=mask_passkey(passkey))
        try:
            request = self._http.build_request("GET", url, headers=headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            logger.error("failed to create http request", url=self.url, error=str(exc))
            return None

        try:
            response = await self._http.send(request)
        except httpx.HTTPError as exc:
            logger.error(
                "failed to perform http request",
                url=self.url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None

        try:
            body = response.json()
        except ValueError:
            body = None
        verdict = VerificationVerdict.from_body(body)

        logger.info(
            "http validation result",
            url=self.url,
            status=response.status_code,
            code=verdict.code,
            message=verdict.message,
            valid=verdict.valid,
            passkey=mask_passkey(passkey),
        )

        if not response.is_success:
            logger.warning(
                "http validation returned non-2xx status",
                status=response.status_code,
                url=self.url,
            )
            return None
        return verdict
