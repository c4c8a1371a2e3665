"""Passkey approval: credential extraction, envelope decryption, cache and authority checks.

Public API:
  - PasskeyApprovalHook   — the announce hook (decision pipeline)
  - AuthorizationOutcome  — APPROVED / MISSING_CREDENTIAL / MALFORMED_CREDENTIAL / UNAPPROVED
  - DecryptedPayload      — plaintext of a sealed credential
  - PayloadCipher         — AES-256-GCM envelope open/seal
  - extract_credential()  — credential lookup in priority order
"""

from __future__ import annotations

from passgate.approval.crypto import PayloadCipher
from passgate.approval.extractor import extract_credential
from passgate.approval.hook import PasskeyApprovalHook
from passgate.approval.models import (
    AnnounceRequest,
    AuthorizationOutcome,
    DecryptedPayload,
    RequestContext,
)

__all__ = [
    "AnnounceRequest",
    "AuthorizationOutcome",
    "DecryptedPayload",
    "PasskeyApprovalHook",
    "PayloadCipher",
    "RequestContext",
    "extract_credential",
]
