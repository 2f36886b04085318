"""
SSI Protocol v0.1 - Canonical Serialization and Hashing

Implements the deterministic encoding used for content hashes and relay
signatures, and the normalization of hashes to fixed-width 32-byte values
expected by the trust registry.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import hashlib
import json
import re
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union
from uuid import UUID

from .errors import InputError


# Genesis hash for the first event in a registry chain
GENESIS_HASH = "0" * 64

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_HEX_RE = re.compile(r"^[0-9a-f]+$")


def format_timestamp(value: datetime) -> str:
    """Format a timezone-aware datetime as ISO 8601 UTC with Z suffix."""
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware for canonical serialization")
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp produced by format_timestamp."""
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _serialize_value(value: Any) -> Any:
    """
    Convert a value to JSON-serializable format following canonical rules.

    Rules:
    - Dates in ISO 8601 format with UTC timezone (Z suffix)
    - UUIDs as strings
    - Enums as their value
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return format_timestamp(value)

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, Enum):
        return value.value

    if isinstance(value, (list, tuple)):
        return [_serialize_value(item) for item in value]

    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}

    if is_dataclass(value) and not isinstance(value, type):
        return _serialize_value(asdict(value))

    return value


def canonical_serialize(obj: Any) -> bytes:
    """
    Serialize a mapping to canonical JSON bytes.

    Canonical format:
    1. JSON format
    2. UTF-8 encoding
    3. Keys sorted lexically (recursive)
    4. No whitespace between elements
    5. No trailing newline
    6. Dates in ISO 8601 format with UTC timezone (Z suffix)

    Signing and verification both go through this function, so signature
    recovery depends on it staying byte-exact.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        obj = asdict(obj)
    elif not isinstance(obj, dict):
        raise TypeError(f"Cannot serialize {type(obj)}")

    json_str = json.dumps(
        _serialize_value(obj),
        separators=(",", ":"),
        ensure_ascii=False,
        sort_keys=True,
    )
    return json_str.encode("utf-8")


def compute_hash(obj: Any) -> str:
    """
    Compute the SHA-256 hash of an object's canonical serialization.

    Returns the hash as a lowercase hexadecimal string.
    """
    return hashlib.sha256(canonical_serialize(obj)).hexdigest()


def normalize_hash(value: Union[str, bytes]) -> str:
    """
    Normalize a hash to 64 lowercase hex characters (32 bytes).

    Any 0x prefix is removed before the value is left-zero-padded.
    Raises InputError for non-hex input or values wider than 32 bytes.
    """
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).hex()

    if not isinstance(value, str) or not value:
        raise InputError("Hash must be a non-empty hex string")

    clean = value.strip().lower()
    if clean.startswith("0x"):
        clean = clean[2:]

    if not _HEX_RE.match(clean):
        raise InputError(f"Hash is not hexadecimal: {value!r}")

    if len(clean) > 64:
        raise InputError(f"Hash exceeds 32 bytes: {value!r}")

    return clean.rjust(64, "0")


def to_bytes32(value: Union[str, bytes]) -> bytes:
    """Convert a hash to the fixed-width 32-byte value the registry takes."""
    return bytes.fromhex(normalize_hash(value))
