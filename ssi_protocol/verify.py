"""
SSI Protocol v0.1 - Presentation Verification

Implements the verifier's pipeline. Verification is:
- Ordered: the first failing check decides the outcome
- Deterministic: same presentation and registry state, same result
- Read-only: nothing is recorded or mutated
- Without implicit exception: no "almost valid"

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .errors import (
    InputError,
    IssuerSignatureMismatch,
    MalformedPresentation,
    NotIssued,
    ProtocolError,
    RegistryPolicyError,
    RejectionReason,
    RelaySignatureMismatch,
    Revoked,
    SignatureMismatch,
    UntrustedIssuer,
)
from .records import Presentation
from .registry import RegistryChecks, TrustRegistry, validate_against_registry
from .signatures import recover_payload_signer, recover_signer, same_identity


logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """Outcome of verifying one presentation, suitable for audit display."""
    verified: bool
    rejection_reason: Optional[RejectionReason] = None
    message: str = ""
    disclosed: dict = field(default_factory=dict)
    relay_id: Optional[str] = None  # recovered holder address
    issuer_id: Optional[str] = None  # recovered issuer address
    registry_checks: Optional[RegistryChecks] = None
    request_id: Optional[str] = None
    verifier_id: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.verified:
            return {
                "ok": False,
                "reason": self.rejection_reason.value if self.rejection_reason else None,
                "error": self.message,
            }
        return {
            "ok": True,
            "message": "VP verified successfully",
            "details": {
                "backendAddress": self.relay_id,
                "issuerAddress": self.issuer_id,
                "onChain": self.registry_checks.to_dict(),
                "derived": dict(self.disclosed),
                "requestId": self.request_id,
                "verifierId": self.verifier_id,
            },
        }


class PresentationVerifier:
    """
    Checks presentations against their signatures and the trust registry.

    Pipeline:
    1. Structure present                         -> MalformedPresentation
    2. Relay signature recovers to relay_id      -> RelaySignatureMismatch
    3. Issuer signature recovers to issuer_id    -> IssuerSignatureMismatch
    4. Issuer trusted                            -> UntrustedIssuer
    5. Credential hash issued                    -> NotIssued
    6. Credential hash not revoked               -> Revoked

    Protocol outcomes are returned as VerificationResult. RegistryError is
    raised, since a failed registry call is not a verdict.
    """

    def __init__(self, registry: TrustRegistry):
        self.registry = registry

    def _structure(self, presentation: Union[Presentation, dict, Any]) -> Presentation:
        if isinstance(presentation, Presentation):
            presentation = presentation.to_dict()
        return Presentation.from_dict(presentation)

    def _relay_signer(self, presentation: Presentation) -> str:
        recovered = recover_payload_signer(
            presentation.relay_payload(), presentation.relay_signature
        )
        if not same_identity(recovered, presentation.relay_id):
            raise RelaySignatureMismatch("Backend signature does not match backend.address")
        return recovered

    def _issuer_signer(self, presentation: Presentation) -> str:
        recovered = recover_signer(presentation.content_hash, presentation.issuer_signature)
        if not same_identity(recovered, presentation.issuer_id):
            raise IssuerSignatureMismatch("Issuer signature does not match issuer public key")
        return recovered

    def verify(self, presentation: Union[Presentation, dict]) -> VerificationResult:
        """Run the full pipeline against a presentation or its wire form."""
        try:
            vp = self._structure(presentation)
            relay_id = self._relay_signer(vp)
            issuer_id = self._issuer_signer(vp)
            checks = validate_against_registry(self.registry, vp.content_hash, vp.issuer_id)
        except (InputError, SignatureMismatch, RegistryPolicyError) as e:
            logger.warning("Presentation rejected: %s (%s)", e.reason.value, e)
            return VerificationResult(verified=False, rejection_reason=e.reason, message=str(e))

        logger.info(
            "Verified presentation for request %s (holder %s, issuer %s)",
            vp.request_id, relay_id, issuer_id,
        )
        return VerificationResult(
            verified=True,
            disclosed=dict(vp.disclosed),
            relay_id=relay_id,
            issuer_id=issuer_id,
            registry_checks=checks,
            request_id=vp.request_id,
            verifier_id=vp.verifier_id,
        )

    def verify_or_raise(self, presentation: Union[Presentation, dict]) -> VerificationResult:
        """Like verify, but raise the rejection as its ProtocolError kind."""
        result = self.verify(presentation)
        if not result.verified:
            raise _ERRORS_BY_REASON.get(result.rejection_reason, ProtocolError)(result.message)
        return result


_ERRORS_BY_REASON = {
    RejectionReason.INPUT_INVALID: InputError,
    RejectionReason.MALFORMED_PRESENTATION: MalformedPresentation,
    RejectionReason.RELAY_SIGNATURE_MISMATCH: RelaySignatureMismatch,
    RejectionReason.ISSUER_SIGNATURE_MISMATCH: IssuerSignatureMismatch,
    RejectionReason.UNTRUSTED_ISSUER: UntrustedIssuer,
    RejectionReason.NOT_ISSUED: NotIssued,
    RejectionReason.REVOKED: Revoked,
}
