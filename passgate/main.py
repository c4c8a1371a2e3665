"""Passgate FastAPI application factory + lifespan lifecycle.

Startup:
  1. load_config()         → app.state.config
  2. create_hook_chain()   → app.state.hook_chain (Redis pools, AES-GCM key, authority client)
  3. app.state.ready = True

Shutdown (reverse):
  app.state.ready = False → hook_chain.close()

A HookConfigError during step 2 (bad key length, bad broker URL, unknown
hook) propagates out of the lifespan and refuses startup.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from passgate.config import Config, load_config
from passgate.errors import ClientError
from passgate.health import router as health_router
from passgate.hooks.factory import create_hook_chain
from passgate.tracker.router import REQUEST_ID_HEADER
from passgate.tracker.router import router as tracker_router
from passgate.utils.logger import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
)

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


async def require_ready(request: Request) -> None:
    """FastAPI dependency: HTTP 503 until the hook chain exists."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail={"status": "starting"})


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Passgate starting up...")

    config: Config = load_config()
    app.state.config = config

    hook_chain = create_hook_chain(config.hooks)
    app.state.hook_chain = hook_chain

    app.state.ready = True
    logger.info("Passgate ready", hooks=[spec.name for spec in config.hooks])

    yield

    logger.info("Passgate shutting down...")
    app.state.ready = False
    await hook_chain.close()
    logger.info("Passgate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the Passgate FastAPI application.

    Call directly in tests for an isolated instance; the module-level ``app``
    is what uvicorn serves.
    """
    application = FastAPI(
        title="Passgate",
        description="Passkey approval gate for BitTorrent trackers",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    application.state.ready = False

    application.include_router(health_router)
    application.include_router(tracker_router, dependencies=[Depends(require_ready)])

    @application.exception_handler(ClientError)
    async def client_error_handler(request: Request, exc: ClientError) -> JSONResponse:
        logger.info(
            "request rejected",
            reason=exc.reason,
            path=str(request.url.path),
        )
        request_id = get_request_id()
        clear_request_id()
        headers = {REQUEST_ID_HEADER: request_id} if request_id else None
        return JSONResponse(
            status_code=403, content={"failure reason": exc.reason}, headers=headers
        )

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        clear_request_id()
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        clear_request_id()
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return application


app = create_app()
