"""
SSI Protocol v0.1 - Protocol Surface

Request/response contracts for the three roles. Each method takes and
returns JSON-compatible dicts using the wire field names, maps to exactly
one core operation, and lets that operation's errors propagate unchanged
so that a transport layer can translate them.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import Settings, configure_logging
from .errors import InputError
from .holder import HolderWallet
from .issuer import CredentialAuthority
from .records import Credential, RequestStatus
from .registry import LedgerTrustRegistry, TrustLedger
from .signatures import load_or_create_keypair
from .storage import SQLiteStore
from .verify import PresentationVerifier


logger = logging.getLogger(__name__)


def _body(body) -> dict:
    if not isinstance(body, dict):
        raise InputError("Request body must be an object")
    return body


class IssuerService:
    """issue-credential and revoke-credential."""

    def __init__(self, authority: CredentialAuthority):
        self.authority = authority

    def issue_credential(self, body: dict) -> dict:
        return self.authority.issue(_body(body)).to_dict()

    def revoke_credential(self, body: dict) -> dict:
        content_hash = _body(body).get("credentialHash")
        if not content_hash:
            raise InputError("Missing credentialHash")
        confirmation = self.authority.revoke(content_hash)
        return {
            "success": True,
            "message": "Credential revoked on registry",
            "eventHash": confirmation.event_hash,
        }


class WalletService:
    """store-credential, create-request, list-pending, resolve-request, fetch-request."""

    def __init__(self, wallet: HolderWallet):
        self.wallet = wallet

    def store_credential(self, body: dict) -> dict:
        credential = Credential.from_dict(_body(body).get("vc"))
        stored = self.wallet.accept(credential)
        return {
            "ok": True,
            "stored": True,
            "credentialHash": stored.credential.content_hash,
            "message": "Credential successfully validated and stored",
        }

    def list_credentials(self) -> dict:
        return {
            stored.credential.content_hash: stored.to_dict()
            for stored in self.wallet.list_credentials()
        }

    def create_request(self, body: dict) -> dict:
        body = _body(body)
        request_id = self.wallet.create_request(
            verifier_id=body.get("verifierId"),
            attributes=body.get("attributes"),
            issuer_filter=body.get("issuerPublicKey"),
        )
        return {"ok": True, "requestId": request_id}

    def list_pending(self) -> list:
        return [request.to_dict() for request in self.wallet.list_pending()]

    def resolve_request(self, body: dict) -> dict:
        body = _body(body)
        request_id = body.get("requestId")
        if not request_id:
            raise InputError("Missing requestId")
        resolved = self.wallet.respond(request_id, body.get("approve"))
        if resolved.status == RequestStatus.REJECTED:
            return {"ok": True, "message": "Request rejected"}
        return {"ok": True, "vp": resolved.presentation.to_dict()}

    def fetch_request(self, request_id: str) -> dict:
        return self.wallet.get_request(request_id).to_dict()


class VerifierService:
    """send-request, poll-request and verify-presentation."""

    def __init__(self, verifier: PresentationVerifier, wallet: WalletService):
        self.verifier = verifier
        self.wallet = wallet

    def send_request(self, body: dict) -> dict:
        body = _body(body)
        data = self.wallet.create_request({
            "verifierId": body.get("verifierId"),
            "attributes": body.get("attributes"),
            "issuerPublicKey": body.get("issuerPublicKey"),
        })
        return {"ok": True, "data": data}

    def poll_request(self, request_id: str) -> dict:
        return {"ok": True, "data": self.wallet.fetch_request(request_id)}

    def verify_presentation(self, body: dict) -> dict:
        vp = _body(body).get("vp")
        if vp is None:
            raise InputError("Missing vp")
        return self.verifier.verify(vp).to_dict()


@dataclass
class Deployment:
    """The three roles wired to one trust ledger."""
    ledger: TrustLedger
    issuer: IssuerService
    wallet: WalletService
    verifier: VerifierService


def bootstrap(settings: Optional[Settings] = None) -> Deployment:
    """
    Build every role from configuration.

    Loads or creates each role's key, opens the ledger and the holder's
    stores, and runs the issuer's one-time startup registration.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)

    owner = load_or_create_keypair(settings.registry_owner_key_path)
    ledger = TrustLedger(owner.address, settings.registry_path)
    owner_registry = LedgerTrustRegistry(ledger, owner.address)

    authority = CredentialAuthority(
        load_or_create_keypair(settings.issuer_key_path), owner_registry
    )
    authority.ensure_registered()

    wallet = HolderWallet(
        load_or_create_keypair(settings.holder_key_path),
        LedgerTrustRegistry(ledger),
        credentials=SQLiteStore(settings.holder_store_path, table="credentials"),
        requests=SQLiteStore(settings.holder_store_path, table="requests"),
    )
    wallet_service = WalletService(wallet)

    logger.info(
        "Bootstrapped issuer %s, wallet %s on registry %s",
        authority.issuer_id, wallet.relay_id, settings.registry_path,
    )
    return Deployment(
        ledger=ledger,
        issuer=IssuerService(authority),
        wallet=wallet_service,
        verifier=VerifierService(PresentationVerifier(LedgerTrustRegistry(ledger)), wallet_service),
    )
