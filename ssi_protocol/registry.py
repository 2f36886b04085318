"""
SSI Protocol v0.1 - Trust Registry

Defines the narrow interface through which the issuer, holder and verifier
consult the trust registry, an append-only SQLite ledger implementing it,
and the registry checks shared by credential acceptance, pre-sign
re-validation and presentation verification.

The ledger records every registry write as an event hash-chained to its
predecessor. No UPDATE, no DELETE: revocation is an appended event, and
"current state" is derived from the event log.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .errors import (
    InputError,
    NotIssued,
    RegistryError,
    Revoked,
    UnauthorizedCaller,
    UntrustedIssuer,
)
from .hashing import (
    GENESIS_HASH,
    compute_hash,
    format_timestamp,
    normalize_hash,
    parse_timestamp,
)


logger = logging.getLogger(__name__)


class RegistryAction(str, Enum):
    """Registry write operations."""
    REGISTER_ISSUER = "register_issuer"
    DEREGISTER_ISSUER = "deregister_issuer"
    RECORD_CREDENTIAL = "record_credential"
    REVOKE_CREDENTIAL = "revoke_credential"


ISSUER_ACTIONS = (RegistryAction.REGISTER_ISSUER, RegistryAction.DEREGISTER_ISSUER)


@dataclass(frozen=True)
class Confirmation:
    """Proof that a registry write was committed."""
    event_hash: str
    sequence: int
    confirmed_at: datetime


@dataclass(frozen=True)
class RegistryEvent:
    """One entry of the registry's append-only event log."""
    sequence: int
    action: RegistryAction
    subject: str  # lowercased issuer address or normalized credential hash
    caller: str
    previous_event_hash: str
    recorded_at: datetime
    event_hash: str

    def hashed_fields(self) -> dict:
        return {
            "action": self.action,
            "subject": self.subject,
            "caller": self.caller,
            "previous_event_hash": self.previous_event_hash,
            "recorded_at": self.recorded_at,
        }


class TrustRegistry(ABC):
    """
    The trust registry as seen by protocol roles.

    Reads are unrestricted. Writes are privileged and return a
    Confirmation; failures to confirm raise RegistryError.
    """

    @abstractmethod
    def is_issuer_trusted(self, issuer_id: str) -> bool:
        ...

    @abstractmethod
    def is_credential_issued(self, content_hash: str) -> bool:
        ...

    @abstractmethod
    def is_credential_revoked(self, content_hash: str) -> bool:
        ...

    @abstractmethod
    def register_issuer(self, issuer_id: str) -> Confirmation:
        ...

    @abstractmethod
    def record_credential(self, content_hash: str) -> Confirmation:
        ...

    @abstractmethod
    def revoke_credential(self, content_hash: str) -> Confirmation:
        ...


def _normalize_issuer(issuer_id: str) -> str:
    if not isinstance(issuer_id, str) or not issuer_id.strip():
        raise InputError("Issuer identifier must be a non-empty string")
    return issuer_id.strip().lower()


class TrustLedger:
    """
    Append-only event ledger backing the trust registry.

    Only the owner may append. Uses SQLite with triggers to enforce
    immutability; every event carries the hash of the one before it.
    """

    def __init__(self, owner: str, db_path: Union[str, Path] = ":memory:"):
        """Initialize the ledger with its owner address and database path."""
        self.owner = _normalize_issuer(owner)
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self):
        """Initialize the database schema with append-only constraints."""
        with self._lock, self._conn:
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS registry_events (
                    sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                    action TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    caller TEXT NOT NULL,
                    previous_event_hash TEXT NOT NULL,
                    recorded_at TEXT NOT NULL,
                    event_hash TEXT UNIQUE NOT NULL
                );

                CREATE TRIGGER IF NOT EXISTS prevent_event_update
                BEFORE UPDATE ON registry_events
                BEGIN
                    SELECT RAISE(ABORT, 'UPDATE not permitted on append-only ledger');
                END;

                CREATE TRIGGER IF NOT EXISTS prevent_event_delete
                BEFORE DELETE ON registry_events
                BEGIN
                    SELECT RAISE(ABORT, 'DELETE not permitted on append-only ledger');
                END;

                CREATE INDEX IF NOT EXISTS idx_event_subject ON registry_events(subject, action);
            """)

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def close(self):
        with self._lock:
            self._conn.close()

    def _get_last_hash(self) -> str:
        row = self._conn.execute(
            "SELECT event_hash FROM registry_events ORDER BY sequence DESC LIMIT 1"
        ).fetchone()
        return row["event_hash"] if row else GENESIS_HASH

    def _latest(self, subject: str, actions: tuple) -> Optional[RegistryEvent]:
        placeholders = ",".join("?" for _ in actions)
        row = self._conn.execute(
            f"""
            SELECT * FROM registry_events
            WHERE subject = ? AND action IN ({placeholders})
            ORDER BY sequence DESC LIMIT 1
            """,
            (subject, *[a.value for a in actions]),
        ).fetchone()
        return self._row_to_event(row) if row else None

    def _row_to_event(self, row) -> RegistryEvent:
        return RegistryEvent(
            sequence=row["sequence"],
            action=RegistryAction(row["action"]),
            subject=row["subject"],
            caller=row["caller"],
            previous_event_hash=row["previous_event_hash"],
            recorded_at=parse_timestamp(row["recorded_at"]),
            event_hash=row["event_hash"],
        )

    @staticmethod
    def _confirmation(event: RegistryEvent) -> Confirmation:
        return Confirmation(
            event_hash=event.event_hash,
            sequence=event.sequence,
            confirmed_at=event.recorded_at,
        )

    def _authorize(self, caller: str, action: RegistryAction) -> str:
        caller = _normalize_issuer(caller)
        if caller != self.owner:
            raise UnauthorizedCaller(f"{caller} may not perform {action.value}")
        return caller

    def append(self, action: RegistryAction, subject: str, caller: str) -> Confirmation:
        """
        Append an event on behalf of caller.

        Raises UnauthorizedCaller unless caller is the ledger owner.
        """
        caller = self._authorize(caller, action)

        with self._transaction():
            previous_hash = self._get_last_hash()
            recorded_at = datetime.now(timezone.utc)
            event_hash = compute_hash({
                "action": action,
                "subject": subject,
                "caller": caller,
                "previous_event_hash": previous_hash,
                "recorded_at": recorded_at,
            })
            cursor = self._conn.execute(
                """
                INSERT INTO registry_events (
                    action, subject, caller, previous_event_hash, recorded_at, event_hash
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (action.value, subject, caller, previous_hash,
                 format_timestamp(recorded_at), event_hash),
            )
            sequence = cursor.lastrowid

        logger.info("Registry %s %s (event %d)", action.value, subject, sequence)
        return Confirmation(
            event_hash=event_hash,
            sequence=sequence,
            confirmed_at=parse_timestamp(format_timestamp(recorded_at)),
        )

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def is_issuer_trusted(self, issuer_id: str) -> bool:
        with self._lock:
            event = self._latest(_normalize_issuer(issuer_id), ISSUER_ACTIONS)
        return event is not None and event.action == RegistryAction.REGISTER_ISSUER

    def is_credential_issued(self, content_hash: str) -> bool:
        with self._lock:
            event = self._latest(normalize_hash(content_hash), (RegistryAction.RECORD_CREDENTIAL,))
        return event is not None

    def is_credential_revoked(self, content_hash: str) -> bool:
        with self._lock:
            event = self._latest(normalize_hash(content_hash), (RegistryAction.REVOKE_CREDENTIAL,))
        return event is not None

    # ------------------------------------------------------------------
    # Idempotent writes
    # ------------------------------------------------------------------

    def register_issuer(self, issuer_id: str, caller: str) -> Confirmation:
        self._authorize(caller, RegistryAction.REGISTER_ISSUER)
        subject = _normalize_issuer(issuer_id)
        with self._lock:
            event = self._latest(subject, ISSUER_ACTIONS)
            if event is not None and event.action == RegistryAction.REGISTER_ISSUER:
                return self._confirmation(event)
            return self.append(RegistryAction.REGISTER_ISSUER, subject, caller)

    def deregister_issuer(self, issuer_id: str, caller: str) -> Confirmation:
        self._authorize(caller, RegistryAction.DEREGISTER_ISSUER)
        subject = _normalize_issuer(issuer_id)
        with self._lock:
            event = self._latest(subject, ISSUER_ACTIONS)
            if event is None:
                raise RegistryError(f"Issuer {issuer_id} was never registered")
            if event.action == RegistryAction.DEREGISTER_ISSUER:
                return self._confirmation(event)
            return self.append(RegistryAction.DEREGISTER_ISSUER, subject, caller)

    def record_credential(self, content_hash: str, caller: str) -> Confirmation:
        self._authorize(caller, RegistryAction.RECORD_CREDENTIAL)
        subject = normalize_hash(content_hash)
        with self._lock:
            event = self._latest(subject, (RegistryAction.RECORD_CREDENTIAL,))
            if event is not None:
                return self._confirmation(event)
            return self.append(RegistryAction.RECORD_CREDENTIAL, subject, caller)

    def revoke_credential(self, content_hash: str, caller: str) -> Confirmation:
        self._authorize(caller, RegistryAction.REVOKE_CREDENTIAL)
        subject = normalize_hash(content_hash)
        with self._lock:
            event = self._latest(subject, (RegistryAction.REVOKE_CREDENTIAL,))
            if event is not None:
                return self._confirmation(event)
            return self.append(RegistryAction.REVOKE_CREDENTIAL, subject, caller)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def events(self) -> list[RegistryEvent]:
        """All events in append order."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM registry_events ORDER BY sequence"
            ).fetchall()
        return [self._row_to_event(row) for row in rows]

    def get_chain_state(self) -> dict:
        """Current chain head for external anchoring."""
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS event_count FROM registry_events"
            ).fetchone()
            return {
                "last_event_hash": self._get_last_hash(),
                "event_count": row["event_count"],
            }

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Verify the integrity of the event chain.

        Returns (is_valid, break_index, error_message).
        If valid, break_index is -1.
        """
        previous_hash = GENESIS_HASH
        for index, event in enumerate(self.events()):
            if event.previous_event_hash != previous_hash:
                return False, index, (
                    f"Chain break at index {index}: expected {previous_hash}, "
                    f"got {event.previous_event_hash}"
                )
            if compute_hash(event.hashed_fields()) != event.event_hash:
                return False, index, f"Event hash mismatch at index {index}"
            previous_hash = event.event_hash
        return True, -1, ""


class LedgerTrustRegistry(TrustRegistry):
    """
    TrustRegistry client over a TrustLedger, bound to one caller identity.

    A client without a caller is read-only. Storage failures surface as
    RegistryError.
    """

    def __init__(self, ledger: TrustLedger, caller: Optional[str] = None):
        self.ledger = ledger
        self.caller = caller

    def connect(self, caller: str) -> "LedgerTrustRegistry":
        """A client for the same ledger acting as another caller."""
        return LedgerTrustRegistry(self.ledger, caller)

    def _write(self, fn, *args):
        if self.caller is None:
            raise UnauthorizedCaller("Registry client is read-only")
        return self._call(fn, *args, self.caller)

    def _call(self, fn, *args):
        try:
            return fn(*args)
        except sqlite3.Error as e:
            raise RegistryError(f"Registry call failed: {e}") from e

    def is_issuer_trusted(self, issuer_id: str) -> bool:
        return self._call(self.ledger.is_issuer_trusted, issuer_id)

    def is_credential_issued(self, content_hash: str) -> bool:
        return self._call(self.ledger.is_credential_issued, content_hash)

    def is_credential_revoked(self, content_hash: str) -> bool:
        return self._call(self.ledger.is_credential_revoked, content_hash)

    def register_issuer(self, issuer_id: str) -> Confirmation:
        return self._write(self.ledger.register_issuer, issuer_id)

    def deregister_issuer(self, issuer_id: str) -> Confirmation:
        return self._write(self.ledger.deregister_issuer, issuer_id)

    def record_credential(self, content_hash: str) -> Confirmation:
        return self._write(self.ledger.record_credential, content_hash)

    def revoke_credential(self, content_hash: str) -> Confirmation:
        return self._write(self.ledger.revoke_credential, content_hash)


@dataclass(frozen=True)
class RegistryChecks:
    """Outcome of the three registry checks, kept for audit display."""
    issuer_trusted: bool
    credential_issued: bool
    credential_revoked: bool

    def to_dict(self) -> dict:
        return {
            "isTrusted": self.issuer_trusted,
            "issued": self.credential_issued,
            "revoked": self.credential_revoked,
        }


def validate_against_registry(
    registry: TrustRegistry,
    content_hash: str,
    issuer_id: str,
) -> RegistryChecks:
    """
    Run the registry checks, in order, short-circuiting on first failure.

    1. issuer is trusted       -> UntrustedIssuer
    2. hash recorded as issued -> NotIssued
    3. hash not revoked        -> Revoked

    Performs reads only. Used at acceptance, before signing a presentation
    and during verification, so all three sites apply identical rules.
    """
    trusted = registry.is_issuer_trusted(issuer_id)
    logger.debug("isIssuerTrusted(%s) = %s", issuer_id, trusted)
    if not trusted:
        raise UntrustedIssuer(f"Issuer {issuer_id} is not trusted")

    issued = registry.is_credential_issued(content_hash)
    logger.debug("isCredentialIssued(%s) = %s", content_hash, issued)
    if not issued:
        raise NotIssued(f"Credential {content_hash} is not recorded as issued")

    revoked = registry.is_credential_revoked(content_hash)
    logger.debug("isCredentialRevoked(%s) = %s", content_hash, revoked)
    if revoked:
        raise Revoked(f"Credential {content_hash} has been revoked")

    return RegistryChecks(
        issuer_trusted=trusted,
        credential_issued=issued,
        credential_revoked=revoked,
    )
