"""
End-to-end tests through the role services wired by bootstrap.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import pytest

from ssi_protocol.config import Settings
from ssi_protocol.errors import InputError, MalformedPresentation, NotFound, Revoked
from ssi_protocol.service import bootstrap


CLAIMS = {"name": "John Doe", "dob": "1990-01-01", "pan": "ABCDE1234F"}


@pytest.fixture
def settings(tmp_path):
    """Settings with every file under a temporary directory."""
    return Settings(
        registry_path=str(tmp_path / "registry.db"),
        registry_owner_key_path=tmp_path / "keys" / "registry_owner.json",
        issuer_key_path=tmp_path / "keys" / "issuer.json",
        holder_key_path=tmp_path / "keys" / "wallet.json",
        holder_store_path=str(tmp_path / "wallet.db"),
        log_level="WARNING",
    )


@pytest.fixture
def deployment(settings):
    deployment = bootstrap(settings)
    yield deployment
    deployment.ledger.close()


def issue_and_store(deployment, claims=CLAIMS):
    issued = deployment.issuer.issue_credential(dict(claims))
    stored = deployment.wallet.store_credential({"vc": issued})
    return issued, stored


def request_and_approve(deployment, attributes):
    sent = deployment.verifier.send_request({"verifierId": "Bank-123", "attributes": attributes})
    request_id = sent["data"]["requestId"]
    resolved = deployment.wallet.resolve_request({"requestId": request_id, "approve": True})
    return request_id, resolved["vp"]


class TestBootstrap:

    def test_issuer_registered_at_startup(self, deployment):
        events = deployment.ledger.events()
        assert len(events) == 1
        assert deployment.ledger.is_issuer_trusted(deployment.issuer.authority.issuer_id)

    def test_keys_created(self, deployment, settings):
        assert settings.registry_owner_key_path.exists()
        assert settings.issuer_key_path.exists()
        assert settings.holder_key_path.exists()

    def test_restart_reuses_state(self, settings):
        first = bootstrap(settings)
        issued, _ = issue_and_store(first)
        count = len(first.ledger.events())
        first.ledger.close()

        second = bootstrap(settings)
        assert len(second.ledger.events()) == count
        assert second.issuer.authority.issuer_id == first.issuer.authority.issuer_id
        assert issued["credentialHash"] in second.wallet.list_credentials()
        second.ledger.close()

    def test_settings_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SSI_REGISTRY_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("SSI_LOG_LEVEL", "DEBUG")
        settings = Settings()
        assert settings.registry_path == str(tmp_path / "env.db")
        assert settings.log_level == "DEBUG"


class TestEndToEnd:
    """Issue, store, request, approve and verify."""

    def test_happy_path(self, deployment):
        issued, stored = issue_and_store(deployment)
        assert stored["ok"] and stored["stored"]
        assert stored["credentialHash"] == issued["credentialHash"]

        sent = deployment.verifier.send_request(
            {"verifierId": "Bank-123", "attributes": ["over18", "panLast4"]}
        )
        request_id = sent["data"]["requestId"]
        pending = deployment.wallet.list_pending()
        assert [r["id"] for r in pending] == [request_id]
        assert pending[0]["status"] == "pending"

        resolved = deployment.wallet.resolve_request({"requestId": request_id, "approve": True})
        vp = resolved["vp"]
        assert vp["vp"] == {"over18": True, "panLast4": "234F"}
        assert deployment.wallet.list_pending() == []

        polled = deployment.verifier.poll_request(request_id)
        assert polled["data"]["status"] == "approved"
        assert polled["data"]["vp"] == vp

        result = deployment.verifier.verify_presentation({"vp": vp})
        assert result["ok"] is True
        assert result["details"]["derived"] == {"over18": True, "panLast4": "234F"}
        assert result["details"]["onChain"] == {"isTrusted": True, "issued": True, "revoked": False}
        assert result["details"]["issuerAddress"] == issued["issuerPublicKey"]

    def test_tampered_presentation(self, deployment):
        issue_and_store(deployment)
        _, vp = request_and_approve(deployment, ["over18", "panLast4"])
        vp["vp"]["panLast4"] = "234G"
        result = deployment.verifier.verify_presentation({"vp": vp})
        assert result["ok"] is False
        assert result["reason"] == "RELAY_SIGNATURE_MISMATCH"

    def test_revocation(self, deployment):
        issued, _ = issue_and_store(deployment)
        _, vp = request_and_approve(deployment, ["over18"])

        revoked = deployment.issuer.revoke_credential({"credentialHash": issued["credentialHash"]})
        assert revoked["success"] is True

        assert deployment.verifier.verify_presentation({"vp": vp})["reason"] == "REVOKED"

        sent = deployment.verifier.send_request({"verifierId": "Bank-123", "attributes": ["over18"]})
        request_id = sent["data"]["requestId"]
        with pytest.raises(Revoked):
            deployment.wallet.resolve_request({"requestId": request_id, "approve": True})
        assert deployment.wallet.fetch_request(request_id)["status"] == "pending"

    def test_reject(self, deployment):
        sent = deployment.verifier.send_request({"verifierId": "Bank-123", "attributes": ["over18"]})
        request_id = sent["data"]["requestId"]
        resolved = deployment.wallet.resolve_request({"requestId": request_id, "approve": False})
        assert resolved == {"ok": True, "message": "Request rejected"}
        assert deployment.verifier.poll_request(request_id)["data"]["status"] == "rejected"

    def test_list_credentials_keyed_by_hash(self, deployment):
        issued, _ = issue_and_store(deployment)
        listed = deployment.wallet.list_credentials()
        assert list(listed) == [issued["credentialHash"]]
        assert listed[issued["credentialHash"]]["vc"] == issued


class TestInputValidation:

    def test_body_must_be_object(self, deployment):
        with pytest.raises(InputError):
            deployment.issuer.issue_credential("name=John")

    def test_issue_missing_fields(self, deployment):
        with pytest.raises(InputError):
            deployment.issuer.issue_credential({"name": "John Doe"})

    def test_store_without_credential(self, deployment):
        with pytest.raises(InputError):
            deployment.wallet.store_credential({})

    def test_store_incomplete_credential(self, deployment):
        issued = deployment.issuer.issue_credential(dict(CLAIMS))
        del issued["issuerSignature"]
        with pytest.raises(InputError):
            deployment.wallet.store_credential({"vc": issued})

    def test_revoke_without_hash(self, deployment):
        with pytest.raises(InputError):
            deployment.issuer.revoke_credential({})

    def test_resolve_without_request_id(self, deployment):
        with pytest.raises(InputError):
            deployment.wallet.resolve_request({"approve": True})

    def test_unknown_request(self, deployment):
        with pytest.raises(NotFound):
            deployment.verifier.poll_request("missing")

    def test_verify_without_vp(self, deployment):
        with pytest.raises(InputError):
            deployment.verifier.verify_presentation({})

    def test_malformed_vp_is_a_verdict(self, deployment):
        result = deployment.verifier.verify_presentation({"vp": {"vp": {}}})
        assert result["reason"] == MalformedPresentation.reason.value

    @pytest.mark.parametrize("vp", [{}, "", [], 0])
    def test_empty_vp_is_a_verdict(self, deployment, vp):
        result = deployment.verifier.verify_presentation({"vp": vp})
        assert result["ok"] is False
        assert result["reason"] == "MALFORMED_PRESENTATION"

    def test_non_string_relay_address_is_a_verdict(self, deployment):
        issue_and_store(deployment)
        _, vp = request_and_approve(deployment, ["over18"])
        vp["backend"]["address"] = 12345
        result = deployment.verifier.verify_presentation({"vp": vp})
        assert result["reason"] == "MALFORMED_PRESENTATION"

    def test_store_non_string_issuer(self, deployment):
        issued = deployment.issuer.issue_credential(dict(CLAIMS))
        issued["issuerPublicKey"] = 12345
        with pytest.raises(InputError):
            deployment.wallet.store_credential({"vc": issued})
        assert deployment.wallet.list_credentials() == {}
