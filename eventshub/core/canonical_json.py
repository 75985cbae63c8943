"""
Canonical JSON (RFC 8785 JCS subset) for event content hashing.

Uses the canonicaljson library:
- Sorted object keys
- Minimal whitespace
- UTF-8 encoding

Contract:
- Same event content → same digest, regardless of field order on the wire
- This is the ONLY serialization used for content hashes
"""

import hashlib
from typing import Any

import canonicaljson


def canonicalJson(obj: Any) -> str:
    """
    Canonical JSON serialization as text.

    Examples:
        >>> canonicalJson({"b": 2, "a": 1})
        '{"a":1,"b":2}'
    """
    return canonicaljson.encode_canonical_json(obj).decode('utf-8')


def canonicalDigest(obj: Any) -> str:
    """Hex SHA256 (64 characters) of the canonical JSON bytes of obj"""
    return hashlib.sha256(canonicaljson.encode_canonical_json(obj)).hexdigest()
