"""Ordered execution of announce hooks."""

from __future__ import annotations

from typing import Sequence

from passgate.approval.models import AnnounceRequest, RequestContext, ScrapeRequest
from passgate.hooks.protocol import Hook
from passgate.utils.logger import get_logger

logger = get_logger(__name__)


class HookChain:
    """Run hooks in configured order, threading the context.

    The first hook raising ClientError stops the chain; later hooks never
    see that request.
    """

    def __init__(self, hooks: Sequence[Hook]) -> None:
        self.hooks = list(hooks)

    async def handle_announce(
        self, ctx: RequestContext, request: AnnounceRequest
    ) -> RequestContext:
        for hook in self.hooks:
            ctx = await hook.handle_announce(ctx, request)
        return ctx

    async def handle_scrape(
        self, ctx: RequestContext, request: ScrapeRequest
    ) -> RequestContext:
        for hook in self.hooks:
            ctx = await hook.handle_scrape(ctx, request)
        return ctx

    async def close(self) -> None:
        """Close every hook. One failing close does not prevent the others."""
        for hook in self.hooks:
            try:
                await hook.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "hook close error (non-fatal)",
                    hook=type(hook).__name__,
                    error=str(exc),
                )
