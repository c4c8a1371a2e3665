"""Credential extraction from an announce request.

Lookup order (first non-empty wins):
  1. route parameter  ``credential``
  2. query parameter  ``credential``
  3. route parameter  ``passkey``   (legacy name)
  4. query parameter  ``passkey``   (legacy name)

Clients still sending ``passkey`` keep working; a request carrying both
names is resolved by ``credential``.
"""

from __future__ import annotations

from typing import Mapping, Optional

from passgate.approval.models import AnnounceRequest, RequestContext
from passgate.constants import CREDENTIAL_PARAM, LEGACY_PASSKEY_PARAM


def _lookup(source: Optional[Mapping[str, str]], name: str) -> str:
    if not source:
        return ""
    value = source.get(name)
    return value if isinstance(value, str) else ""


def extract_credential(request: AnnounceRequest) -> Optional[str]:
    """Return the raw credential string, or None if the request carries none."""
    for name in (CREDENTIAL_PARAM, LEGACY_PASSKEY_PARAM):
        for source in (request.route_params, request.params):
            value = _lookup(source, name)
            if value:
                return value
    return None


def resolve_passkey(ctx: RequestContext, request: AnnounceRequest) -> str:
    """Identity for hooks running after passkey approval.

    The decrypted payload wins; otherwise the route or query ``passkey``
    value is taken as-is. Empty when neither is present.
    """
    if ctx.passkey_payload is not None and ctx.passkey_payload.passkey:
        return ctx.passkey_payload.passkey
    for source in (request.route_params, request.params):
        value = _lookup(source, LEGACY_PASSKEY_PARAM)
        if value:
            return value
    return ""
