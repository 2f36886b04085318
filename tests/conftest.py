"""
Pytest configuration and shared fixtures.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ssi_protocol.holder import HolderWallet
from ssi_protocol.issuer import CredentialAuthority
from ssi_protocol.registry import LedgerTrustRegistry, TrustLedger
from ssi_protocol.signatures import generate_keypair
from ssi_protocol.verify import PresentationVerifier


FIXED_NOW = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def owner_keys():
    """Registry owner identity."""
    return generate_keypair()


@pytest.fixture
def issuer_keys():
    return generate_keypair()


@pytest.fixture
def holder_keys():
    return generate_keypair()


@pytest.fixture
def ledger(owner_keys):
    """An in-memory trust ledger."""
    ledger = TrustLedger(owner_keys.address, ":memory:")
    yield ledger
    ledger.close()


@pytest.fixture
def owner_registry(ledger, owner_keys):
    """Registry client allowed to write."""
    return LedgerTrustRegistry(ledger, owner_keys.address)


@pytest.fixture
def read_registry(ledger):
    """Read-only registry client, as used by holder and verifier."""
    return LedgerTrustRegistry(ledger)


@pytest.fixture
def authority(issuer_keys, owner_registry):
    """A registered credential authority."""
    authority = CredentialAuthority(issuer_keys, owner_registry, clock=lambda: FIXED_NOW)
    authority.ensure_registered()
    return authority


@pytest.fixture
def claims():
    return {
        "name": "John Doe",
        "dob": "1990-01-01",
        "pan": "ABCDE1234F",
        "issuedAt": "2025-01-15T09:00:00Z",
    }


@pytest.fixture
def credential(authority, claims):
    """A credential issued and recorded on the registry."""
    return authority.issue(claims)


@pytest.fixture
def wallet(holder_keys, read_registry):
    """A holder wallet with a fixed clock."""
    return HolderWallet(holder_keys, read_registry, clock=lambda: FIXED_NOW)


@pytest.fixture
def verifier(read_registry):
    return PresentationVerifier(read_registry)
