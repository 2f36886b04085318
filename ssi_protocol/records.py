"""
SSI Protocol v0.1 - Record Types

Implements the Credential (VC), Proof Request and Presentation (VP)
records exchanged between issuer, holder and verifier, together with
their wire (JSON-compatible dict) form.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from .errors import AlreadyResolved, InputError, MalformedPresentation
from .hashing import format_timestamp, parse_timestamp


class RequestStatus(str, Enum):
    """Proof request lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _require(data: dict, keys: tuple, error=InputError) -> None:
    missing = [k for k in keys if data.get(k) in (None, "")]
    if missing:
        raise error(f"Missing fields: {', '.join(missing)}")


def _require_str(data: dict, keys: tuple, error=InputError) -> None:
    wrong = [k for k in keys if not isinstance(data[k], str)]
    if wrong:
        raise error(f"Fields must be strings: {', '.join(wrong)}")


@dataclass(frozen=True)
class Credential:
    """
    Verifiable Credential (VC).

    Claims plus the issuer's attestation over their content hash. The
    content hash is never trusted from input alone: the holder recomputes
    it on acceptance.
    """
    claims: dict
    content_hash: str  # SHA-256 hex of canonical claims
    issuer_id: str  # account address of the issuing authority
    issuer_signature: str  # hex, recoverable to issuer_id

    def to_dict(self) -> dict:
        return {
            "vc": dict(self.claims),
            "credentialHash": self.content_hash,
            "issuerPublicKey": self.issuer_id,
            "issuerSignature": self.issuer_signature,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Credential":
        if not isinstance(data, dict):
            raise InputError("Invalid VC payload")
        _require(data, ("vc", "credentialHash", "issuerPublicKey", "issuerSignature"))
        _require_str(data, ("credentialHash", "issuerPublicKey", "issuerSignature"))
        if not isinstance(data["vc"], dict):
            raise InputError("Invalid VC payload: claims must be an object")
        return cls(
            claims=dict(data["vc"]),
            content_hash=data["credentialHash"],
            issuer_id=data["issuerPublicKey"],
            issuer_signature=data["issuerSignature"],
        )


@dataclass(frozen=True)
class StoredCredential:
    """A credential accepted into the holder's store."""
    credential: Credential
    stored_at: datetime

    def to_dict(self) -> dict:
        return {
            "vc": self.credential.to_dict(),
            "storedAt": format_timestamp(self.stored_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredCredential":
        return cls(
            credential=Credential.from_dict(data["vc"]),
            stored_at=parse_timestamp(data["storedAt"]),
        )


@dataclass(frozen=True)
class Presentation:
    """
    Verifiable Presentation (VP).

    Disclosed attributes derived from one credential, the issuer's original
    attestation copied verbatim, and the holder's relay signature over
    everything else. Immutable once constructed.
    """
    disclosed: dict
    content_hash: str
    issuer_id: str
    issuer_signature: str
    relay_id: str
    relay_timestamp: str  # ISO 8601 UTC, kept verbatim for signing
    request_id: str
    verifier_id: str
    relay_signature: str = ""

    def relay_payload(self) -> dict:
        """The mapping the holder signs: every field except the relay signature."""
        return {
            "vp": dict(self.disclosed),
            "credentialHash": self.content_hash,
            "issuerPublicKey": self.issuer_id,
            "issuerSignature": self.issuer_signature,
            "backend": {
                "address": self.relay_id,
                "timestamp": self.relay_timestamp,
            },
            "requestId": self.request_id,
            "verifierId": self.verifier_id,
        }

    def to_dict(self) -> dict:
        payload = self.relay_payload()
        payload["backendSignature"] = self.relay_signature
        return payload

    @classmethod
    def from_dict(cls, data: Any) -> "Presentation":
        """
        Parse a wire presentation.

        Raises MalformedPresentation when any signed or signature field is
        absent or of the wrong type.
        """
        if not isinstance(data, dict):
            raise MalformedPresentation("Malformed VP: not an object")
        _require(
            data,
            ("credentialHash", "issuerPublicKey", "issuerSignature",
             "backend", "backendSignature", "requestId", "verifierId"),
            MalformedPresentation,
        )
        _require_str(
            data,
            ("credentialHash", "issuerPublicKey", "issuerSignature",
             "backendSignature", "requestId", "verifierId"),
            MalformedPresentation,
        )
        backend = data["backend"]
        if not isinstance(backend, dict):
            raise MalformedPresentation("Malformed VP: backend must be an object")
        _require(backend, ("address", "timestamp"), MalformedPresentation)
        _require_str(backend, ("address", "timestamp"), MalformedPresentation)
        disclosed = data.get("vp")
        if not isinstance(disclosed, dict):
            raise MalformedPresentation("Malformed VP: missing disclosed attributes")

        return cls(
            disclosed=dict(disclosed),
            content_hash=data["credentialHash"],
            issuer_id=data["issuerPublicKey"],
            issuer_signature=data["issuerSignature"],
            relay_id=backend["address"],
            relay_timestamp=backend["timestamp"],
            request_id=data["requestId"],
            verifier_id=data["verifierId"],
            relay_signature=data["backendSignature"],
        )


@dataclass(frozen=True)
class ProofRequest:
    """
    Proof Request.

    Created pending by an inbound request, resolved exactly once by a
    holder decision, never mutated afterward.
    """
    id: str
    verifier_id: str
    attributes: tuple
    issuer_filter: Optional[str]
    status: RequestStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None
    presentation: Optional[Presentation] = None

    @classmethod
    def create(
        cls,
        verifier_id: str,
        attributes: list,
        issuer_filter: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "ProofRequest":
        """Factory method to create a new pending request."""
        return cls(
            id=str(uuid4()),
            verifier_id=verifier_id,
            attributes=tuple(attributes),
            issuer_filter=issuer_filter or None,
            status=RequestStatus.PENDING,
            created_at=created_at or datetime.now(timezone.utc),
        )

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def _check_pending(self) -> None:
        if not self.is_pending:
            raise AlreadyResolved(f"Request {self.id} already {self.status.value}")

    def approve(self, presentation: Presentation, resolved_at: datetime) -> "ProofRequest":
        """Return the approved successor of this pending request."""
        self._check_pending()
        return replace(
            self,
            status=RequestStatus.APPROVED,
            resolved_at=resolved_at,
            presentation=presentation,
        )

    def reject(self, resolved_at: datetime) -> "ProofRequest":
        """Return the rejected successor of this pending request."""
        self._check_pending()
        return replace(self, status=RequestStatus.REJECTED, resolved_at=resolved_at)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "verifierId": self.verifier_id,
            "attributes": list(self.attributes),
            "issuerPublicKey": self.issuer_filter,
            "status": self.status.value,
            "createdAt": format_timestamp(self.created_at),
        }
        if self.resolved_at is not None:
            data["resolvedAt"] = format_timestamp(self.resolved_at)
        if self.presentation is not None:
            data["vp"] = self.presentation.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ProofRequest":
        return cls(
            id=data["id"],
            verifier_id=data["verifierId"],
            attributes=tuple(data["attributes"]),
            issuer_filter=data.get("issuerPublicKey"),
            status=RequestStatus(data["status"]),
            created_at=parse_timestamp(data["createdAt"]),
            resolved_at=parse_timestamp(data["resolvedAt"]) if data.get("resolvedAt") else None,
            presentation=Presentation.from_dict(data["vp"]) if data.get("vp") else None,
        )
