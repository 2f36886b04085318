"""
SSI Protocol v0.1 - Holder Wallet

The holder role: validates credentials end-to-end before storing them,
keeps the proof-request audit log, and resolves requests into signed
presentations.

Request lifecycle:

    pending --approve--> approved   (presentation attached)
    pending --reject---> rejected

Rejection is unconditional. Approval only happens when a stored credential
can satisfy the request and still passes the registry checks at the moment
of signing; otherwise the request stays pending and the caller gets the
error. Terminal states are never left.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
import threading
import weakref
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from .derivation import can_satisfy, derive, resolve_attributes
from .errors import (
    AlreadyResolved,
    HashMismatch,
    InputError,
    NoMatchingCredential,
    NotFound,
    SignatureMismatch,
)
from .hashing import compute_hash, format_timestamp
from .records import Credential, Presentation, ProofRequest, StoredCredential
from .registry import TrustRegistry, validate_against_registry
from .signatures import KeyPair, recover_signer, same_identity, sign_payload
from .storage import KeyValueStore, MemoryStore


logger = logging.getLogger(__name__)


class HolderWallet:
    """
    Credential store and proof-request resolver.

    Resolutions of the same request id are serialized by a per-request
    lock; different ids never wait on each other. The final state
    transition is committed with compare-and-swap so a record that changed
    underneath is never overwritten.
    """

    def __init__(
        self,
        keypair: KeyPair,
        registry: TrustRegistry,
        credentials: Optional[KeyValueStore] = None,
        requests: Optional[KeyValueStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.keypair = keypair
        self.registry = registry
        self._credentials = credentials if credentials is not None else MemoryStore()
        self._requests = requests if requests is not None else MemoryStore()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks = weakref.WeakValueDictionary()
        self._global_lock = threading.Lock()

    @property
    def relay_id(self) -> str:
        return self.keypair.address

    def _now(self) -> datetime:
        return self._clock().astimezone(timezone.utc).replace(microsecond=0)

    def _acquire_lock(self, request_id: str) -> threading.Lock:
        """
        Acquire the exclusive lock for one request id.

        Entries live only while some caller holds a reference to the lock.
        """
        with self._global_lock:
            lock = self._locks.get(request_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[request_id] = lock
        lock.acquire()
        return lock

    def _release_lock(self, lock: threading.Lock):
        lock.release()

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def accept(self, credential: Credential) -> StoredCredential:
        """
        Validate a credential and store it, keyed by content hash.

        Checks, in order, short-circuiting on first failure:
        1. recomputed hash equals the supplied hash -> HashMismatch
        2. issuer signature recovers to issuer_id   -> SignatureMismatch
        3. issuer is trusted                        -> UntrustedIssuer
        4. hash recorded as issued                  -> NotIssued
        5. hash not revoked                         -> Revoked

        Re-accepting an identical credential returns the stored entry.
        """
        computed_hash = compute_hash(credential.claims)
        if computed_hash != str(credential.content_hash).lower():
            logger.warning("Rejected credential: hash mismatch (%s)", credential.content_hash)
            raise HashMismatch("Credential hash mismatch")

        recovered = recover_signer(computed_hash, credential.issuer_signature)
        if not same_identity(recovered, credential.issuer_id):
            logger.warning("Rejected credential %s: issuer signature mismatch", computed_hash)
            raise SignatureMismatch(
                "Issuer signature does not match provided issuer public key"
            )

        validate_against_registry(self.registry, computed_hash, credential.issuer_id)

        stored = StoredCredential(
            credential=replace(credential, content_hash=computed_hash),
            stored_at=self._now(),
        )
        if not self._credentials.compare_and_swap(computed_hash, None, stored.to_dict()):
            logger.info("Credential %s already stored", computed_hash)
            return StoredCredential.from_dict(self._credentials.get(computed_hash))

        logger.info("Stored credential %s from %s", computed_hash, credential.issuer_id)
        return stored

    def list_credentials(self) -> list[StoredCredential]:
        """Stored credentials in insertion order."""
        return [StoredCredential.from_dict(value) for value in self._credentials.values()]

    def get_credential(self, content_hash: str) -> StoredCredential:
        value = self._credentials.get(str(content_hash).lower())
        if value is None:
            raise NotFound(f"Credential {content_hash} not found in wallet")
        return StoredCredential.from_dict(value)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def create_request(
        self,
        verifier_id: str,
        attributes: list,
        issuer_filter: Optional[str] = None,
    ) -> str:
        """
        Record a pending proof request and return its id.

        Attribute names are only checked for shape here; whether they can
        be disclosed is decided against a concrete credential at resolution.
        """
        if not isinstance(verifier_id, str) or not verifier_id.strip():
            raise InputError("Missing verifierId")
        if (
            not isinstance(attributes, (list, tuple))
            or not attributes
            or not all(isinstance(a, str) and a for a in attributes)
        ):
            raise InputError("attributes must be a non-empty list of names")
        if issuer_filter is not None and not isinstance(issuer_filter, str):
            raise InputError("issuerPublicKey must be a string")

        resolve_attributes(attributes)
        request = ProofRequest.create(
            verifier_id=verifier_id,
            attributes=list(dict.fromkeys(attributes)),
            issuer_filter=issuer_filter,
            created_at=self._now(),
        )
        self._requests.put(request.id, request.to_dict())
        logger.info(
            "Created request %s from %s for %s",
            request.id, verifier_id, ", ".join(request.attributes),
        )
        return request.id

    def get_request(self, request_id: str) -> ProofRequest:
        value = self._requests.get(request_id)
        if value is None:
            raise NotFound(f"Request {request_id} not found")
        return ProofRequest.from_dict(value)

    def list_requests(self) -> list[ProofRequest]:
        return [ProofRequest.from_dict(value) for value in self._requests.values()]

    def list_pending(self) -> list[ProofRequest]:
        """Pending requests in creation order."""
        return [r for r in self.list_requests() if r.is_pending]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def select_credential(
        self,
        attributes,
        issuer_filter: Optional[str] = None,
    ) -> Optional[Credential]:
        """
        First stored credential, in insertion order, that matches the issuer
        filter and holds the source claim of every requested attribute.

        Returns None when nothing qualifies.
        """
        resolved = resolve_attributes(attributes)
        for stored in self.list_credentials():
            credential = stored.credential
            if issuer_filter and not same_identity(credential.issuer_id, issuer_filter):
                continue
            if all(can_satisfy(credential.claims, a) for a in resolved):
                return credential
        return None

    def build_presentation(self, request: ProofRequest, credential: Credential) -> Presentation:
        """
        Derive the requested attributes and sign them as a presentation.

        The credential is re-checked against the registry immediately
        before signing, since it may have been revoked or its issuer
        de-trusted after acceptance.
        """
        validate_against_registry(self.registry, credential.content_hash, credential.issuer_id)

        now = self._now()
        disclosed = derive(credential.claims, resolve_attributes(request.attributes), now.date())

        presentation = Presentation(
            disclosed=disclosed,
            content_hash=credential.content_hash,
            issuer_id=credential.issuer_id,
            issuer_signature=credential.issuer_signature,
            relay_id=self.relay_id,
            relay_timestamp=format_timestamp(now),
            request_id=request.id,
            verifier_id=request.verifier_id,
        )
        signature = sign_payload(self.keypair.private_key, presentation.relay_payload())
        return replace(presentation, relay_signature=signature)

    def respond(self, request_id: str, approve: bool) -> ProofRequest:
        """
        Resolve a pending request.

        Raises NotFound for unknown ids and AlreadyResolved for requests
        that have left the pending state. On approval, any selection or
        construction failure propagates and the request stays pending.
        """
        if not isinstance(approve, bool):
            raise InputError("approve must be a boolean")
        if not isinstance(request_id, str) or request_id not in self._requests:
            raise NotFound(f"Request {request_id} not found")

        lock = self._acquire_lock(request_id)
        try:
            current = self._requests.get(request_id)
            if current is None:
                raise NotFound(f"Request {request_id} not found")
            request = ProofRequest.from_dict(current)

            if not approve:
                resolved = request.reject(self._now())
            else:
                if not request.is_pending:
                    raise AlreadyResolved(f"Request {request_id} already {request.status.value}")
                credential = self.select_credential(request.attributes, request.issuer_filter)
                if credential is None:
                    raise NoMatchingCredential(
                        f"No stored credential satisfies request {request_id}"
                    )
                presentation = self.build_presentation(request, credential)
                resolved = request.approve(presentation, self._now())

            if not self._requests.compare_and_swap(request_id, current, resolved.to_dict()):
                raise AlreadyResolved(f"Request {request_id} changed during resolution")
        finally:
            self._release_lock(lock)

        logger.info("Request %s %s", request_id, resolved.status.value)
        return resolved
