"""Announce hook interface.

A hook inspects one announce (or scrape) and either returns the context,
possibly enriched, or raises ``ClientError`` to reject the request.
Implementations: PasskeyApprovalHook, PeerLimitHook.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from passgate.approval.models import AnnounceRequest, RequestContext, ScrapeRequest


@runtime_checkable
class Hook(Protocol):
    """One stage of the tracker's request-processing chain."""

    async def handle_announce(
        self, ctx: RequestContext, request: AnnounceRequest
    ) -> RequestContext:
        """Return ctx (possibly enriched) or raise ClientError."""
        ...

    async def handle_scrape(
        self, ctx: RequestContext, request: ScrapeRequest
    ) -> RequestContext:
        ...

    async def close(self) -> None:
        """Release pooled connections. Called once at shutdown."""
        ...
