"""Health endpoint for Passgate.

GET /health — 503 until the lifespan has built the hook chain, then 200
with the configured hook names.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from passgate.hooks.chain import HookChain

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Readiness probe.

    Response body (200):
        {"status": "ok", "hooks": ["PasskeyApprovalHook", "PeerLimitHook"]}

    Response body (503):
        {"status": "starting"}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail={"status": "starting"})

    chain: HookChain = request.app.state.hook_chain
    return {
        "status": "ok",
        "hooks": [type(hook).__name__ for hook in chain.hooks],
    }
