#!/usr/bin/env python3
"""
SSI Protocol v0.1 - Basic Flow Demo

Demonstrates the complete flow of:
1. Registering the issuer on the trust registry
2. Issuing a credential
3. Validating and storing it in the holder's wallet
4. Requesting, approving and verifying a selective disclosure
5. Detecting a tampered presentation
6. Refusing to present a revoked credential

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import sys
from dataclasses import replace
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ssi_protocol.config import configure_logging
from ssi_protocol.errors import ProtocolError
from ssi_protocol.holder import HolderWallet
from ssi_protocol.issuer import CredentialAuthority
from ssi_protocol.registry import LedgerTrustRegistry, TrustLedger
from ssi_protocol.signatures import generate_keypair
from ssi_protocol.verify import PresentationVerifier


def main():
    configure_logging("WARNING")

    print("=" * 60)
    print("SSI Protocol v0.1 - Basic Flow Demo")
    print("=" * 60)
    print()

    # Step 1: Keys and registry
    print("[1] Generating keys and opening the trust registry...")
    owner = generate_keypair()
    issuer_keys = generate_keypair()
    holder_keys = generate_keypair()
    ledger = TrustLedger(owner.address, ":memory:")
    print(f"    Registry owner: {owner.address}")
    print(f"    Issuer:         {issuer_keys.address}")
    print(f"    Holder:         {holder_keys.address}")
    print()

    # Step 2: Issuer startup registration
    print("[2] Registering issuer...")
    authority = CredentialAuthority(issuer_keys, LedgerTrustRegistry(ledger, owner.address))
    authority.ensure_registered()
    print(f"    Trusted: {ledger.is_issuer_trusted(issuer_keys.address)}")
    print()

    # Step 3: Issue a credential
    print("[3] Issuing credential...")
    credential = authority.issue({"name": "John Doe", "dob": "1990-01-01", "pan": "ABCDE1234F"})
    print(f"    Content hash: {credential.content_hash}")
    print()

    # Step 4: Holder accepts it
    print("[4] Holder validating and storing credential...")
    wallet = HolderWallet(holder_keys, LedgerTrustRegistry(ledger))
    wallet.accept(credential)
    print(f"    Stored credentials: {len(wallet.list_credentials())}")
    print()

    # Step 5: Verifier asks for a disclosure, holder approves
    print("[5] Requesting over18 and panLast4, holder approves...")
    request_id = wallet.create_request("Bank-123", ["over18", "panLast4"])
    resolved = wallet.respond(request_id, approve=True)
    presentation = resolved.presentation
    print(f"    Request {request_id}: {resolved.status.value}")
    print(f"    Disclosed: {presentation.disclosed}")
    print()

    # Step 6: Verify
    print("[6] Verifying presentation...")
    verifier = PresentationVerifier(LedgerTrustRegistry(ledger))
    result = verifier.verify(presentation)
    print(f"    Verified: {result.verified}")
    print(f"    Holder:   {result.relay_id}")
    print(f"    Issuer:   {result.issuer_id}")
    print(f"    Registry: {result.registry_checks.to_dict()}")
    print()

    # Step 7: Tamper with a disclosed value
    print("[7] Verifying a tampered presentation...")
    tampered = replace(presentation, disclosed={**presentation.disclosed, "panLast4": "234G"})
    result = verifier.verify(tampered)
    print(f"    Verified: {result.verified} ({result.rejection_reason.value})")
    print()

    # Step 8: Revoke and try again
    print("[8] Revoking credential and requesting again...")
    authority.revoke(credential.content_hash)
    request_id = wallet.create_request("Bank-123", ["over18"])
    try:
        wallet.respond(request_id, approve=True)
    except ProtocolError as e:
        print(f"    Refused: {e.reason.value}")
    print(f"    Request status: {wallet.get_request(request_id).status.value}")
    print(f"    Original presentation now verifies: {verifier.verify(presentation).verified}")
    print()

    # Step 9: Registry audit
    print("[9] Registry event chain...")
    is_valid, _, _ = ledger.verify_chain()
    for event in ledger.events():
        print(f"    #{event.sequence} {event.action.value} {event.subject[:18]}...")
    print(f"    Chain valid: {is_valid}")
    print()

    print("=" * 60)
    print("Demo completed successfully!")
    print()
    print("Key principles demonstrated:")
    print("  - No credential stored without hash, signature and registry checks")
    print("  - Only requested attributes are disclosed, derived where possible")
    print("  - Presentations bind the issuer's and the holder's signatures")
    print("  - Revocation takes effect before the next signature")
    print("=" * 60)


if __name__ == "__main__":
    main()
