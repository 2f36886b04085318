"""
SSI Protocol v0.1 - Reference Implementation

This package provides a reference implementation of a three-party
selective-disclosure credential protocol, including:

- Credentials (VC) attested by an issuer over a SHA-256 content hash
- Proof requests with a pending/approved/rejected lifecycle
- Presentations (VP) carrying derived attributes and a holder relay signature
- secp256k1 recoverable signatures (EIP-191 personal messages)
- Append-only, hash-chained trust registry
- Presentation verification against signatures and registry state

SPDX-License-Identifier: AGPL-3.0-or-later
"""

__version__ = "0.1.0"
__protocol_version__ = "0.1"

from .records import Credential, Presentation, ProofRequest, RequestStatus
from .signatures import generate_keypair, recover_signer, sign_message
from .hashing import canonical_serialize, compute_hash
from .registry import LedgerTrustRegistry, TrustLedger, TrustRegistry, validate_against_registry
from .issuer import CredentialAuthority
from .holder import HolderWallet
from .verify import PresentationVerifier, VerificationResult

__all__ = [
    "Credential",
    "Presentation",
    "ProofRequest",
    "RequestStatus",
    "generate_keypair",
    "recover_signer",
    "sign_message",
    "canonical_serialize",
    "compute_hash",
    "LedgerTrustRegistry",
    "TrustLedger",
    "TrustRegistry",
    "validate_against_registry",
    "CredentialAuthority",
    "HolderWallet",
    "PresentationVerifier",
    "VerificationResult",
]
