"""Data types flowing through the announce hook chain.

``DecryptedPayload`` mirrors the sealed credential envelope issued by the
site backend. Its JSON wire keys are short (``pk``, ``ts``, ``fd``, ``pd``)
because the envelope travels inside every announce URL.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from passgate.errors import MalformedCredentialError


class AuthorizationOutcome(str, enum.Enum):
    """Result of one passkey approval decision."""

    APPROVED = "approved"
    MISSING_CREDENTIAL = "missing_credential"
    MALFORMED_CREDENTIAL = "malformed_credential"
    UNAPPROVED = "unapproved"

    @property
    def reason(self) -> Optional[str]:
        """Client-facing failure reason, or None for APPROVED."""
        return _OUTCOME_REASONS.get(self)


_OUTCOME_REASONS: dict[AuthorizationOutcome, str] = {
    AuthorizationOutcome.MISSING_CREDENTIAL: "missing passkey",
    AuthorizationOutcome.MALFORMED_CREDENTIAL: "invalid passkey",
    AuthorizationOutcome.UNAPPROVED: "unapproved passkey",
}


@dataclass(frozen=True)
class DecryptedPayload:
    """Plaintext contents of a sealed credential.

    passkey:     the user's tracker passkey; never empty.
    timestamp:   issue time (unix seconds) stamped by the issuer.
    aux_flag:    optional free/discount flag (``fd``), bool or string.
    aux_percent: optional percentage string (``pd``), e.g. ``"50%"``.
    """

    passkey: str
    timestamp: int = 0
    aux_flag: Optional[Union[bool, str]] = None
    aux_percent: Optional[str] = None

    def to_json(self) -> bytes:
        doc: dict[str, Any] = {"pk": self.passkey, "ts": self.timestamp}
        if self.aux_flag is not None:
            doc["fd"] = self.aux_flag
        if self.aux_percent is not None:
            doc["pd"] = self.aux_percent
        return json.dumps(doc, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> "DecryptedPayload":
        """Parse the plaintext envelope.

        Raises:
            MalformedCredentialError: not a JSON object, ``pk`` missing or
                empty, or a field of the wrong type.
        """
        try:
            doc = json.loads(raw)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedCredentialError("payload is not valid JSON") from exc

        if not isinstance(doc, dict):
            raise MalformedCredentialError("payload is not a JSON object")

        passkey = doc.get("pk")
        if not isinstance(passkey, str) or not passkey:
            raise MalformedCredentialError("payload has no passkey")

        timestamp = doc.get("ts", 0)
        # bool is an int subclass; a JSON true is not a timestamp
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise MalformedCredentialError("payload timestamp is not an integer")

        aux_flag = doc.get("fd")
        if aux_flag is not None and not isinstance(aux_flag, (bool, str)):
            raise MalformedCredentialError("payload fd must be a bool or string")

        aux_percent = doc.get("pd")
        if aux_percent is not None and not isinstance(aux_percent, str):
            raise MalformedCredentialError("payload pd must be a string")

        return cls(
            passkey=passkey,
            timestamp=timestamp,
            aux_flag=aux_flag,
            aux_percent=aux_percent,
        )


@dataclass
class AnnounceRequest:
    """The parts of a parsed announce that hooks consult.

    route_params: named segments captured by the transport router
                  (e.g. ``/{passkey}/announce``).
    params:       query-string parameters.
    info_hash:    20 raw bytes, lowercase hex encoded.
    peer_id:      20 raw bytes, lowercase hex encoded.
    event:        "", "started", "stopped" or "completed".
    ip:           announced address, or the connection's remote address.
    """

    route_params: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] = field(default_factory=dict)
    info_hash: str = ""
    peer_id: str = ""
    event: str = ""
    uploaded: int = 0
    downloaded: int = 0
    left: int = 0
    port: int = 0
    ip: str = ""


@dataclass
class ScrapeRequest:
    """Scrape parameters; ``info_hashes`` are hex encoded like ``AnnounceRequest.info_hash``."""

    route_params: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] = field(default_factory=dict)
    info_hashes: list[str] = field(default_factory=list)


@dataclass
class RequestContext:
    """Per-request state threaded through the hook chain.

    passkey_payload is set by the passkey approval hook as soon as a
    credential decrypts, whether or not it is finally approved, so later
    hooks and audit logging can use the resolved identity.
    """

    request_id: Optional[str] = None
    passkey_payload: Optional[DecryptedPayload] = None
    passkey: Optional[str] = None
    extras: dict[str, Any] = field(default_factory=dict)
