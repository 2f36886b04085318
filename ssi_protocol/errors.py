"""
SSI Protocol v0.1 - Error Taxonomy

Every failure the issuer, holder and verifier can report. Each error kind
carries a machine-readable RejectionReason so that results can be audited
and compared without parsing messages.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

from enum import Enum


class RejectionReason(str, Enum):
    """Rejection reason codes."""
    INPUT_INVALID = "INPUT_INVALID"
    MALFORMED_PRESENTATION = "MALFORMED_PRESENTATION"
    HASH_MISMATCH = "HASH_MISMATCH"
    SIGNATURE_MISMATCH = "SIGNATURE_MISMATCH"
    RELAY_SIGNATURE_MISMATCH = "RELAY_SIGNATURE_MISMATCH"
    ISSUER_SIGNATURE_MISMATCH = "ISSUER_SIGNATURE_MISMATCH"
    UNTRUSTED_ISSUER = "UNTRUSTED_ISSUER"
    NOT_ISSUED = "NOT_ISSUED"
    REVOKED = "REVOKED"
    UNSUPPORTED_ATTRIBUTE = "UNSUPPORTED_ATTRIBUTE"
    NO_MATCHING_CREDENTIAL = "NO_MATCHING_CREDENTIAL"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    REGISTRY_FAILURE = "REGISTRY_FAILURE"
    UNAUTHORIZED_CALLER = "UNAUTHORIZED_CALLER"


class ProtocolError(Exception):
    """Base exception for all protocol operations."""
    reason = RejectionReason.INPUT_INVALID


class InputError(ProtocolError):
    """Missing or malformed caller-supplied fields."""
    reason = RejectionReason.INPUT_INVALID


class MalformedPresentation(InputError):
    """A presentation is missing one of its required fields."""
    reason = RejectionReason.MALFORMED_PRESENTATION


class IntegrityError(ProtocolError):
    """Base class for cryptographic integrity failures."""
    pass


class HashMismatch(IntegrityError):
    """The supplied content hash does not match the claims."""
    reason = RejectionReason.HASH_MISMATCH


class SignatureMismatch(IntegrityError):
    """A signature does not recover to the identity it claims."""
    reason = RejectionReason.SIGNATURE_MISMATCH


class RelaySignatureMismatch(SignatureMismatch):
    """The holder's relay signature does not recover to relayId."""
    reason = RejectionReason.RELAY_SIGNATURE_MISMATCH


class IssuerSignatureMismatch(SignatureMismatch):
    """The issuer signature does not recover to issuerId."""
    reason = RejectionReason.ISSUER_SIGNATURE_MISMATCH


class RegistryPolicyError(ProtocolError):
    """
    Base class for trust-registry policy failures.

    These are expected business outcomes: the operation fails, the
    system stays healthy.
    """
    pass


class UntrustedIssuer(RegistryPolicyError):
    reason = RejectionReason.UNTRUSTED_ISSUER


class NotIssued(RegistryPolicyError):
    reason = RejectionReason.NOT_ISSUED


class Revoked(RegistryPolicyError):
    reason = RejectionReason.REVOKED


class UnsupportedAttribute(ProtocolError):
    """A requested disclosure cannot be derived from the credential."""
    reason = RejectionReason.UNSUPPORTED_ATTRIBUTE

    def __init__(self, attribute: str, detail: str = ""):
        message = f"Unsupported attribute: {attribute}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.attribute = attribute


class NoMatchingCredential(ProtocolError):
    """No stored credential can satisfy a proof request."""
    reason = RejectionReason.NO_MATCHING_CREDENTIAL


class NotFound(ProtocolError):
    reason = RejectionReason.NOT_FOUND


class AlreadyResolved(ProtocolError):
    """A proof request has already left the pending state."""
    reason = RejectionReason.ALREADY_RESOLVED


class RegistryError(ProtocolError):
    """
    The registry call itself failed or did not confirm.

    Transient: the operation performed no partial state change and the
    caller may retry.
    """
    reason = RejectionReason.REGISTRY_FAILURE


class UnauthorizedCaller(RegistryError):
    """A privileged registry write was attempted by a non-owner."""
    reason = RejectionReason.UNAUTHORIZED_CALLER
