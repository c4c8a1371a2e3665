"""Sealed credential envelopes (AES-256-GCM).

Envelope layout, URL-safe base64 encoded (with ``=`` padding):

    nonce (12 bytes) || ciphertext || GCM tag (16 bytes)

No associated data is bound. The key is fixed for the life of the process;
rotating it invalidates every credential issued under the old key.
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from passgate.approval.models import DecryptedPayload
from passgate.constants import ENCRYPTION_KEY_BYTES, GCM_NONCE_BYTES
from passgate.errors import HookConfigError, MalformedCredentialError


class PayloadCipher:
    """Authenticated decryption (and issuing) of credential envelopes."""

    nonce_size: int = GCM_NONCE_BYTES

    def __init__(self, key: Union[str, bytes]) -> None:
        key_bytes = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        if len(key_bytes) != ENCRYPTION_KEY_BYTES:
            raise HookConfigError(
                f"encryption_key must be {ENCRYPTION_KEY_BYTES} bytes, got {len(key_bytes)}"
            )
        self._aead = AESGCM(key_bytes)

    def decrypt(self, credential: str) -> DecryptedPayload:
        """Open a sealed credential.

        Raises:
            MalformedCredentialError: invalid base64, envelope shorter than the
                nonce, authentication failure, or a payload of the wrong shape.
        """
        try:
            data = _decode_urlsafe(credential)
        except (binascii.Error, ValueError) as exc:
            raise MalformedCredentialError("credential is not valid base64") from exc

        if len(data) < self.nonce_size:
            raise MalformedCredentialError("ciphertext too short")

        nonce, sealed = data[:self.nonce_size], data[self.nonce_size:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            raise MalformedCredentialError("credential failed authentication") from exc

        return DecryptedPayload.from_json(plaintext)

    def encrypt(self, payload: DecryptedPayload) -> str:
        """Seal a payload with a fresh random nonce. Used by issuers and tests."""
        nonce = os.urandom(self.nonce_size)
        sealed = self._aead.encrypt(nonce, payload.to_json(), None)
        return base64.urlsafe_b64encode(nonce + sealed).decode("ascii")


def _decode_urlsafe(value: str) -> bytes:
    """Strict URL-safe base64 decode.

    ``urlsafe_b64decode`` silently discards characters outside the alphabet,
    so translate to the standard alphabet and decode with validation instead.
    """
    try:
        raw = value.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ValueError("non-ascii credential") from exc
    if b"+" in raw or b"/" in raw:
        raise ValueError("standard base64 alphabet in url-safe credential")
    translated = raw.replace(b"-", b"+").replace(b"_", b"/")
    return base64.b64decode(translated, validate=True)
