"""
SSI Protocol v0.1 - Credential Authority

The issuer role: attests claims about a subject by signing their content
hash and recording that hash in the trust registry.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .derivation import parse_date_of_birth
from .errors import InputError, RegistryError
from .hashing import compute_hash, format_timestamp, normalize_hash
from .records import Credential
from .registry import Confirmation, TrustRegistry
from .signatures import KeyPair, sign_message


logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ("name", "dob", "pan")


def _confirmed(confirmation: Optional[Confirmation], operation: str) -> Confirmation:
    if confirmation is None:
        raise RegistryError(f"Registry did not confirm {operation}")
    return confirmation


class CredentialAuthority:
    """
    Issues and revokes credentials.

    The authority's registry client must be bound to a caller allowed to
    write to the registry.
    """

    def __init__(
        self,
        keypair: KeyPair,
        registry: TrustRegistry,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.keypair = keypair
        self.registry = registry
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def issuer_id(self) -> str:
        return self.keypair.address

    def ensure_registered(self) -> Optional[Confirmation]:
        """
        Register this authority as a trusted issuer if it is not already.

        Run once at process start. Returns the confirmation when a
        registration was performed, None otherwise.
        """
        if self.registry.is_issuer_trusted(self.issuer_id):
            logger.info("Issuer %s already registered", self.issuer_id)
            return None

        logger.info("Issuer %s not registered, registering", self.issuer_id)
        confirmation = _confirmed(
            self.registry.register_issuer(self.issuer_id), "registerIssuer"
        )
        logger.info("Issuer %s registered (event %d)", self.issuer_id, confirmation.sequence)
        return confirmation

    def build_claims(self, claims: dict) -> dict:
        """Validate caller claims and add the issuance timestamp."""
        if not isinstance(claims, dict):
            raise InputError("Claims must be an object")

        missing = [k for k in REQUIRED_CLAIMS if not claims.get(k)]
        if missing:
            raise InputError(f"Missing fields: {', '.join(missing)}")

        try:
            parse_date_of_birth(claims["dob"])
        except ValueError as e:
            raise InputError(f"dob must be YYYY-MM-DD: {e}") from e

        built = dict(claims)
        built.setdefault("issuedAt", format_timestamp(self._clock()))
        return built

    def issue(self, claims: dict) -> Credential:
        """
        Issue a credential over claims.

        Computes the content hash, signs it, records it in the registry and
        returns the full credential. Recording an already-issued hash is a
        no-op success.
        """
        credential_claims = self.build_claims(claims)
        content_hash = compute_hash(credential_claims)
        signature = sign_message(self.keypair.private_key, content_hash)

        confirmation = _confirmed(
            self.registry.record_credential(content_hash), "recordCredential"
        )
        logger.info(
            "Issued credential %s (event %d)", content_hash, confirmation.sequence
        )

        return Credential(
            claims=credential_claims,
            content_hash=content_hash,
            issuer_id=self.issuer_id,
            issuer_signature=signature,
        )

    def revoke(self, content_hash: str) -> Confirmation:
        """Revoke a credential hash. Revocation is permanent."""
        content_hash = normalize_hash(content_hash)
        confirmation = _confirmed(
            self.registry.revoke_credential(content_hash), "revokeCredential"
        )
        logger.info("Revoked credential %s (event %d)", content_hash, confirmation.sequence)
        return confirmation
