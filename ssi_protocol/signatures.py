"""
SSI Protocol v0.1 - Cryptographic Signatures

Implements secp256k1 ECDSA signing with public-key recovery. Identities
are account addresses, and a signature is checked by recovering the
signer's address from it rather than by verifying against a known key.
Messages are signed as EIP-191 personal messages.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography.hazmat.primitives.asymmetric import ec
from eth_account import Account
from eth_account.messages import encode_defunct

from .hashing import canonical_serialize


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPair:
    """A role's signing identity."""
    private_key: str  # 0x-prefixed hex, never shared
    address: str  # checksummed account address

    def __repr__(self) -> str:
        return f"KeyPair(address={self.address!r})"


def generate_keypair() -> KeyPair:
    """Generate a new secp256k1 key pair and derive its account address."""
    private_key = ec.generate_private_key(ec.SECP256K1())
    secret = private_key.private_numbers().private_value.to_bytes(32, "big")
    return keypair_from_private_key("0x" + secret.hex())


def keypair_from_private_key(private_key: str) -> KeyPair:
    """Build a KeyPair from an existing hex private key."""
    account = Account.from_key(private_key)
    return KeyPair(private_key="0x" + bytes(account.key).hex(), address=account.address)


def load_or_create_keypair(path: Union[str, Path]) -> KeyPair:
    """
    Load the key pair stored at path, creating and saving one if absent.

    Gives a role a stable identity across restarts.
    """
    path = Path(path)
    if path.exists():
        data = json.loads(path.read_text(encoding="utf-8"))
        keypair = keypair_from_private_key(data["privateKey"])
        if keypair.address.lower() != data.get("address", keypair.address).lower():
            raise ValueError(f"Key file {path} address does not match its private key")
        return keypair

    keypair = generate_keypair()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps({"privateKey": keypair.private_key, "address": keypair.address}, indent=2),
        encoding="utf-8",
    )
    logger.info("Created key file %s for %s", path, keypair.address)
    return keypair


def sign_message(private_key: str, message: str) -> str:
    """Sign a text message; returns the 65-byte signature as 0x hex."""
    signed = Account.sign_message(encode_defunct(text=message), private_key=private_key)
    return "0x" + bytes(signed.signature).hex()


def recover_signer(message: str, signature: str) -> Optional[str]:
    """
    Recover the address that signed a text message.

    Returns None if the signature is malformed or unrecoverable.
    """
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception:
        return None


def same_identity(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two account identifiers case-insensitively."""
    if not isinstance(a, str) or not isinstance(b, str) or not a or not b:
        return False
    return a.lower() == b.lower()


def sign_payload(private_key: str, payload: dict) -> str:
    """Sign the canonical serialization of a mapping."""
    return sign_message(private_key, canonical_serialize(payload).decode("utf-8"))


def recover_payload_signer(payload: dict, signature: str) -> Optional[str]:
    """Recover the signer of a mapping's canonical serialization."""
    return recover_signer(canonical_serialize(payload).decode("utf-8"), signature)
