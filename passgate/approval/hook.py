"""Passkey approval hook.

Decides whether an announce carries an approved passkey:

    extract credential ──none──────────────────────────► MISSING_CREDENTIAL
         │
    decrypt (only when encryption_key is set) ──fails──► MALFORMED_CREDENTIAL
         │   └─ payload attached to ctx.passkey_payload
    cache: SISMEMBER set_key passkey ──member──────────► APPROVED
         │
    authority: GET http_url?passkey=… ──valid──────────► APPROVED (+ SADD/EXPIRE)
         │
         └─────────────────────────────────────────────► UNAPPROVED

Encrypted and plaintext modes are mutually exclusive per deployment: with a
key every credential must decrypt; without one the credential is the
passkey, verbatim, even if it happens to look like ciphertext.

Cache and authority failures never reject on their own. They degrade to
"no information" and the request ends UNAPPROVED unless something else
approves it.
"""

from __future__ import annotations

from typing import Optional

import httpx

from passgate.approval.authority import AuthorityClient
from passgate.approval.cache import PasskeyCache
from passgate.approval.crypto import PayloadCipher
from passgate.approval.extractor import extract_credential
from passgate.approval.models import (
    AnnounceRequest,
    AuthorizationOutcome,
    RequestContext,
    ScrapeRequest,
)
from passgate.config import PasskeyApprovalConfig
from passgate.errors import ClientError, MalformedCredentialError
from passgate.store import create_redis_client
from passgate.utils.logger import get_logger, mask_passkey

logger = get_logger(__name__)


class PasskeyApprovalHook:
    """Gate announces on an approved passkey.

    Collaborators are optional and fixed at construction:
      cipher    — present iff an encryption key is configured
      cache     — present iff a Redis broker is configured
      authority — present iff an authority URL is configured
    """

    def __init__(
        self,
        cfg: PasskeyApprovalConfig,
        cipher: Optional[PayloadCipher] = None,
        cache: Optional[PasskeyCache] = None,
        authority: Optional[AuthorityClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.cfg = cfg
        self.cipher = cipher
        self.cache = cache
        self.authority = authority
        self._http_client = http_client

    @classmethod
    def from_config(cls, cfg: PasskeyApprovalConfig) -> "PasskeyApprovalHook":
        """Build the hook and its process-wide handles.

        Raises:
            HookConfigError: encryption key not 32 bytes, or bad broker URL.
        """
        cipher = PayloadCipher(cfg.encryption_key) if cfg.encryption_key else None

        cache: Optional[PasskeyCache] = None
        if cfg.redis_broker:
            client = create_redis_client(
                cfg.redis_broker,
                connect_timeout=cfg.redis_connect_timeout,
                read_timeout=cfg.redis_read_timeout,
                write_timeout=cfg.redis_write_timeout,
            )
            cache = PasskeyCache(client, cfg.set_key, cfg.cache_ttl_seconds)

        http_client: Optional[httpx.AsyncClient] = None
        authority: Optional[AuthorityClient] = None
        if cfg.http_url:
            http_client = httpx.AsyncClient(timeout=httpx.Timeout(cfg.http_timeout))
            authority = AuthorityClient(
                http_client,
                cfg.http_url,
                api_key=cfg.http_api_key,
                api_key_header=cfg.http_api_key_header,
                cache=cache,
            )

        if cache is None and authority is None:
            logger.warning(
                "passkey approval has neither cache nor authority configured",
                allow_when_unverifiable=cfg.allow_when_unverifiable,
            )

        hook = cls(cfg, cipher=cipher, cache=cache, authority=authority, http_client=http_client)
        logger.info("passkey approval middleware enabled", **cfg.log_fields())
        return hook

    async def authorize(
        self, ctx: RequestContext, request: AnnounceRequest
    ) -> tuple[RequestContext, AuthorizationOutcome]:
        """Run the decision pipeline and return (ctx, outcome)."""
        credential = extract_credential(request)
        if not credential:
            return ctx, AuthorizationOutcome.MISSING_CREDENTIAL

        if self.cipher is not None:
            try:
                payload = self.cipher.decrypt(credential)
            except MalformedCredentialError as exc:
                logger.error(
                    "failed to decrypt passkey",
                    error=str(exc),
                    credential_length=len(credential),
                )
                return ctx, AuthorizationOutcome.MALFORMED_CREDENTIAL
            ctx.passkey_payload = payload
            passkey = payload.passkey
        else:
            passkey = credential
        ctx.passkey = passkey

        if self.cache is not None and await self.cache.contains(passkey):
            return ctx, AuthorizationOutcome.APPROVED

        if self.authority is not None and await self.authority.approve(passkey):
            return ctx, AuthorizationOutcome.APPROVED

        if self.cache is None and self.authority is None and self.cfg.allow_when_unverifiable:
            return ctx, AuthorizationOutcome.APPROVED

        logger.info(
            "passkey unapproved",
            passkey=mask_passkey(passkey),
            info_hash=request.info_hash,
        )
        return ctx, AuthorizationOutcome.UNAPPROVED

    async def handle_announce(
        self, ctx: RequestContext, request: AnnounceRequest
    ) -> RequestContext:
        ctx, outcome = await self.authorize(ctx, request)
        if outcome is AuthorizationOutcome.APPROVED:
            return ctx
        raise ClientError(outcome.reason)

    async def handle_scrape(
        self, ctx: RequestContext, request: ScrapeRequest
    ) -> RequestContext:
        return ctx

    async def close(self) -> None:
        if self.cache is not None:
            await self.cache.close()
        if self._http_client is not None:
            await self._http_client.aclose()
