"""Tracker-facing routes: announce and scrape gated by the hook chain.

Routes:
  GET /announce                  credential/passkey in the query string
  GET /{passkey}/announce        legacy passkey path segment
  GET /announce/{credential}     sealed credential path segment
  GET /scrape

The tracker wire format (bencoding, peer lists) belongs to the tracker
itself. These routes return the gate decision only: 200 with the resolved
identity, or 403 ``{"failure reason": ...}`` from ClientError.

``info_hash`` and ``peer_id`` are raw 20-byte strings percent-encoded into
the query. They are decoded from the undecoded query string and carried as
hex; Starlette's ``query_params`` would replace non-UTF-8 bytes with U+FFFD.
"""

from __future__ import annotations

import ipaddress
from typing import Any, Optional
from urllib.parse import unquote_plus, unquote_to_bytes

from fastapi import APIRouter, Request, Response

from passgate.approval.models import AnnounceRequest, RequestContext, ScrapeRequest
from passgate.errors import ClientError
from passgate.hooks.chain import HookChain
from passgate.utils.logger import clear_request_id, set_request_id
from passgate.utils.ulid import generate_ulid

router = APIRouter(tags=["tracker"])

REQUEST_ID_HEADER = "X-Passgate-Request-ID"


def _chain(request: Request) -> HookChain:
    return request.app.state.hook_chain


def _new_context(response: Response) -> RequestContext:
    """Bind a fresh request id to the logging context.

    The binding outlives the endpoint so the ClientError handler can log
    and echo it; the handler (or the endpoint on success) clears it.
    """
    request_id = generate_ulid()
    set_request_id(request_id)
    response.headers[REQUEST_ID_HEADER] = request_id
    return RequestContext(request_id=request_id)


def _binary_params(request: Request) -> dict[str, list[bytes]]:
    """Percent-decode the raw query string to bytes, keeping repeated keys."""
    decoded: dict[str, list[bytes]] = {}
    for pair in request.scope.get("query_string", b"").split(b"&"):
        if not pair:
            continue
        name, _, value = pair.partition(b"=")
        key = unquote_plus(name.decode("latin-1"))
        decoded.setdefault(key, []).append(unquote_to_bytes(value.replace(b"+", b" ")))
    return decoded


def _first_hex(binary: dict[str, list[bytes]], name: str) -> str:
    values = binary.get(name)
    return values[0].hex() if values else ""


def _counter(request: Request, name: str) -> int:
    value = request.query_params.get(name, "")
    if not value:
        return 0
    try:
        number = int(value)
    except ValueError:
        raise ClientError(f"failed to parse parameter: {name}") from None
    if number < 0:
        raise ClientError(f"failed to parse parameter: {name}")
    return number


def _peer_ip(request: Request) -> str:
    announced = request.query_params.get("ip", "")
    if announced:
        try:
            return str(ipaddress.ip_address(announced))
        except ValueError:
            raise ClientError("failed to parse parameter: ip") from None
    return request.client.host if request.client else ""


def _announce_request(request: Request) -> AnnounceRequest:
    query = request.query_params
    binary = _binary_params(request)
    return AnnounceRequest(
        route_params=dict(request.path_params),
        params=dict(query),
        info_hash=_first_hex(binary, "info_hash"),
        peer_id=_first_hex(binary, "peer_id"),
        event=query.get("event", ""),
        uploaded=_counter(request, "uploaded"),
        downloaded=_counter(request, "downloaded"),
        left=_counter(request, "left"),
        port=_counter(request, "port"),
        ip=_peer_ip(request),
    )


def _announce_body(ctx: RequestContext) -> dict[str, Any]:
    payload: Optional[dict[str, Any]] = None
    if ctx.passkey_payload is not None:
        payload = {
            "timestamp": ctx.passkey_payload.timestamp,
            "fd": ctx.passkey_payload.aux_flag,
            "pd": ctx.passkey_payload.aux_percent,
        }
    return {"status": "ok", "passkey": ctx.passkey, "payload": payload}


async def _announce(request: Request, response: Response) -> dict[str, Any]:
    ctx = _new_context(response)
    ctx = await _chain(request).handle_announce(ctx, _announce_request(request))
    clear_request_id()
    return _announce_body(ctx)


@router.get("/announce")
async def announce(request: Request, response: Response) -> dict[str, Any]:
    return await _announce(request, response)


@router.get("/announce/{credential}")
async def announce_with_credential(
    credential: str, request: Request, response: Response
) -> dict[str, Any]:
    return await _announce(request, response)


@router.get("/{passkey}/announce")
async def announce_with_passkey(
    passkey: str, request: Request, response: Response
) -> dict[str, Any]:
    return await _announce(request, response)


@router.get("/scrape")
async def scrape(request: Request, response: Response) -> dict[str, Any]:
    ctx = _new_context(response)
    scrape_request = ScrapeRequest(
        route_params=dict(request.path_params),
        params=dict(request.query_params),
        info_hashes=[value.hex() for value in _binary_params(request).get("info_hash", [])],
    )
    await _chain(request).handle_scrape(ctx, scrape_request)
    clear_request_id()
    return {"status": "ok"}
