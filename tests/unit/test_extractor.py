"""Unit tests for passgate/approval/extractor.py — credential priority order."""

from __future__ import annotations

import pytest

from passgate.approval.extractor import extract_credential
from passgate.approval.models import AnnounceRequest


class TestExtractCredential:
    def test_nothing_found(self) -> None:
        assert extract_credential(AnnounceRequest()) is None

    def test_empty_values_are_not_found(self) -> None:
        request = AnnounceRequest(
            route_params={"credential": "", "passkey": ""},
            params={"credential": "", "passkey": ""},
        )
        assert extract_credential(request) is None

    @pytest.mark.parametrize(
        "route_params, params, expected",
        [
            ({"credential": "rc"}, {"credential": "qc", "passkey": "qp"}, "rc"),
            ({"passkey": "rp"}, {"credential": "qc"}, "qc"),
            ({"passkey": "rp"}, {"passkey": "qp"}, "rp"),
            ({}, {"passkey": "qp"}, "qp"),
            ({"credential": ""}, {"passkey": "qp"}, "qp"),
        ],
    )
    def test_priority(self, route_params: dict, params: dict, expected: str) -> None:
        request = AnnounceRequest(route_params=route_params, params=params)
        assert extract_credential(request) == expected

    def test_credential_wins_over_passkey(self) -> None:
        request = AnnounceRequest(params={"credential": "new", "passkey": "old"})
        assert extract_credential(request) == "new"

    def test_legacy_passkey_alone(self) -> None:
        request = AnnounceRequest(params={"passkey": "old"})
        assert extract_credential(request) == "old"

    def test_unrelated_params_ignored(self) -> None:
        request = AnnounceRequest(params={"info_hash": "abc", "peer_id": "-qB4500-"})
        assert extract_credential(request) is None
