"""Unit tests for passgate/approval/models.py."""

from __future__ import annotations

import json

import pytest

from passgate.approval.models import AuthorizationOutcome, DecryptedPayload
from passgate.errors import ClientError, MalformedCredentialError


class TestDecryptedPayloadJson:
    def test_wire_keys(self) -> None:
        payload = DecryptedPayload(passkey="abc", timestamp=5, aux_flag=True, aux_percent="50%")
        assert json.loads(payload.to_json()) == {"pk": "abc", "ts": 5, "fd": True, "pd": "50%"}

    def test_optional_fields_omitted(self) -> None:
        payload = DecryptedPayload(passkey="abc", timestamp=5)
        assert json.loads(payload.to_json()) == {"pk": "abc", "ts": 5}

    def test_missing_timestamp_defaults_to_zero(self) -> None:
        assert DecryptedPayload.from_json(b'{"pk": "abc"}').timestamp == 0

    def test_unknown_keys_ignored(self) -> None:
        payload = DecryptedPayload.from_json(b'{"pk": "abc", "ts": 1, "uid": 99}')
        assert payload == DecryptedPayload(passkey="abc", timestamp=1)

    def test_boolean_timestamp_rejected(self) -> None:
        with pytest.raises(MalformedCredentialError):
            DecryptedPayload.from_json(b'{"pk": "abc", "ts": true}')


class TestAuthorizationOutcome:
    def test_reasons(self) -> None:
        assert AuthorizationOutcome.APPROVED.reason is None
        assert AuthorizationOutcome.MISSING_CREDENTIAL.reason == "missing passkey"
        assert AuthorizationOutcome.MALFORMED_CREDENTIAL.reason == "invalid passkey"
        assert AuthorizationOutcome.UNAPPROVED.reason == "unapproved passkey"


class TestClientError:
    def test_reason_is_message(self) -> None:
        assert str(ClientError("missing passkey")) == "missing passkey"
