"""
Tests for Credential, Presentation and ProofRequest records.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import pytest
from datetime import datetime, timezone
from uuid import UUID

from ssi_protocol.errors import AlreadyResolved, InputError, MalformedPresentation
from ssi_protocol.records import Credential, Presentation, ProofRequest, RequestStatus


NOW = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_presentation():
    return Presentation(
        disclosed={"over18": True},
        content_hash="ab" * 32,
        issuer_id="0x" + "11" * 20,
        issuer_signature="0x" + "22" * 65,
        relay_id="0x" + "33" * 20,
        relay_timestamp="2025-01-15T10:00:00Z",
        request_id="request-1",
        verifier_id="Bank-123",
        relay_signature="0x" + "44" * 65,
    )


class TestCredential:

    def test_from_wire(self):
        credential = Credential.from_dict({
            "vc": {"name": "John Doe"},
            "credentialHash": "ab" * 32,
            "issuerPublicKey": "0x" + "11" * 20,
            "issuerSignature": "0x" + "22" * 65,
        })
        assert credential.claims == {"name": "John Doe"}
        assert credential.to_dict()["credentialHash"] == "ab" * 32

    @pytest.mark.parametrize("data", [
        None,
        {},
        {"vc": "claims", "credentialHash": "ab", "issuerPublicKey": "0x1", "issuerSignature": "0x2"},
        {"vc": {"name": "x"}, "credentialHash": "", "issuerPublicKey": "0x1", "issuerSignature": "0x2"},
        {"vc": {"name": "x"}, "credentialHash": "ab", "issuerPublicKey": 12345, "issuerSignature": "0x2"},
        {"vc": {"name": "x"}, "credentialHash": ["ab"], "issuerPublicKey": "0x1", "issuerSignature": "0x2"},
        {"vc": {"name": "x"}, "credentialHash": "ab", "issuerPublicKey": "0x1", "issuerSignature": 7},
    ])
    def test_invalid_wire(self, data):
        with pytest.raises(InputError):
            Credential.from_dict(data)


class TestPresentation:
    """Signed payload and wire form."""

    def test_relay_payload_excludes_relay_signature(self, sample_presentation):
        payload = sample_presentation.relay_payload()
        assert "backendSignature" not in payload
        assert payload["backend"] == {
            "address": sample_presentation.relay_id,
            "timestamp": "2025-01-15T10:00:00Z",
        }
        assert payload["issuerSignature"] == sample_presentation.issuer_signature

    def test_wire_form_roundtrip(self, sample_presentation):
        data = sample_presentation.to_dict()
        assert data["backendSignature"] == sample_presentation.relay_signature
        assert Presentation.from_dict(data) == sample_presentation

    def test_immutable(self, sample_presentation):
        with pytest.raises(AttributeError):
            sample_presentation.disclosed = {}

    def test_missing_request_id(self, sample_presentation):
        data = sample_presentation.to_dict()
        data["requestId"] = ""
        with pytest.raises(MalformedPresentation):
            Presentation.from_dict(data)

    def test_non_string_relay_address(self, sample_presentation):
        data = sample_presentation.to_dict()
        data["backend"]["address"] = 12345
        with pytest.raises(MalformedPresentation):
            Presentation.from_dict(data)

    def test_malformed_is_input_error(self):
        with pytest.raises(InputError):
            Presentation.from_dict({})


class TestProofRequest:
    """Lifecycle transitions."""

    def test_create(self):
        request = ProofRequest.create("Bank-123", ["over18"], created_at=NOW)
        UUID(request.id)
        assert request.status == RequestStatus.PENDING
        assert request.attributes == ("over18",)
        assert request.issuer_filter is None
        assert request.resolved_at is None

    def test_ids_unique(self):
        assert ProofRequest.create("a", ["x"]).id != ProofRequest.create("a", ["x"]).id

    def test_approve(self, sample_presentation):
        request = ProofRequest.create("Bank-123", ["over18"], created_at=NOW)
        approved = request.approve(sample_presentation, NOW)
        assert approved.status == RequestStatus.APPROVED
        assert approved.presentation == sample_presentation
        assert request.is_pending

    def test_reject(self):
        rejected = ProofRequest.create("Bank-123", ["over18"], created_at=NOW).reject(NOW)
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.resolved_at == NOW

    def test_terminal_states_final(self, sample_presentation):
        request = ProofRequest.create("Bank-123", ["over18"], created_at=NOW)
        approved = request.approve(sample_presentation, NOW)
        rejected = request.reject(NOW)
        for resolved in (approved, rejected):
            with pytest.raises(AlreadyResolved):
                resolved.approve(sample_presentation, NOW)
            with pytest.raises(AlreadyResolved):
                resolved.reject(NOW)

    def test_wire_roundtrip(self, sample_presentation):
        request = ProofRequest.create("Bank-123", ["over18"], "0xabc", created_at=NOW)
        approved = request.approve(sample_presentation, NOW)
        data = approved.to_dict()
        assert data["status"] == "approved"
        assert data["issuerPublicKey"] == "0xabc"
        assert data["vp"] == sample_presentation.to_dict()
        assert ProofRequest.from_dict(data) == approved

    def test_pending_wire_form_has_no_resolution(self):
        data = ProofRequest.create("Bank-123", ["over18"], created_at=NOW).to_dict()
        assert "resolvedAt" not in data
        assert "vp" not in data
